# setup.py
from setuptools import setup, find_packages

setup(
    name="rho",
    version="0.1.0",
    packages=find_packages(include=["rho", "rho.*"]),
    python_requires=">=3.10",
    install_requires=[
        "numpy",
    ],
    extras_require={
        "test": ["pytest", "hypothesis"],
    },
    zip_safe=False,
)
