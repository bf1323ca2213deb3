"""
Setup file.
"""

from setuptools import setup

if __name__ == "__main__":
    setup(
        package_data={"crossmatrix": ["assets/crossmatrix.ini"]},
        include_package_data=True)
