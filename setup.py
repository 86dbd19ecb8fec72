"""Setup script with optional Cython compilation of service_control.

The default build is pure Python. For compiled modules install Cython into the
build environment and disable build isolation:

    pip install "Cython>=3.0"
    SERVICE_CONTROL_BUILD_COMPILED=1 pip install --no-build-isolation .
"""

import glob
import os
from pathlib import Path

from setuptools import setup
from setuptools.extension import Extension
from setuptools.command.build_py import build_py as build_py_orig

# Base directory for source files
SRC_DIR = Path("service_control")

# Files/directories to EXCLUDE from compilation (keep as pure Python)
# - __init__.py files: needed for package imports
# - __pycache__: not source files
# - console.py: ctypes bindings loaded only on Windows
EXCLUDE_PATTERNS = [
    "__init__.py",
    "__pycache__",
    "backends/console.py",
]

# Compiled wheels are opt-in and need Cython installed beforehand
BUILD_COMPILED = os.environ.get("SERVICE_CONTROL_BUILD_COMPILED", "0") == "1"

extensions = []
cmdclass = {}

if BUILD_COMPILED:
    compiled_modules = set()

    for filepath in glob.glob(str(SRC_DIR / "**/*.py"), recursive=True):
        normalized_path = filepath.replace("\\", "/")

        if any(pattern in normalized_path for pattern in EXCLUDE_PATTERNS):
            continue

        # e.g., "service_control/backends/standard.py" -> "service_control.backends.standard"
        module_name = ".".join(Path(filepath).with_suffix("").parts)

        extensions.append(Extension(name=module_name, sources=[filepath]))
        compiled_modules.add(module_name)

    # Leave out .py files that have been compiled
    class build_py(build_py_orig):
        def find_package_modules(self, package, package_dir):
            modules = super().find_package_modules(package, package_dir)
            return [
                (pkg, mod, file)
                for (pkg, mod, file) in modules
                if f"{pkg}.{mod}" not in compiled_modules
            ]

    cmdclass = {"build_py": build_py}


if extensions:
    from Cython.Build import cythonize

    ext_modules = cythonize(
        extensions,
        compiler_directives={
            "language_level": "3",
            "embedsignature": True,  # Preserves function signatures in .so
        },
        annotate=False,
    )
else:
    ext_modules = []

setup(
    ext_modules=ext_modules,
    cmdclass=cmdclass,
)
