"""crossmatrix - cross-platform build, test and release matrix runner."""

__version__ = "0.1.0"
