from setuptools import find_packages, setup

setup(
    name="hpadapt",
    version="0.1.0",
    description="Automatic hp-adaptivity for finite-element solvers",
    author="hpadapt Authors",
    packages=find_packages(include=["hpadapt", "hpadapt.*"]),
    install_requires=[
        "numpy>=1.22.0",
        "scipy>=1.8.0",  # Gauss rules, Legendre polynomials and sparse solves
        "pandas>=1.4.0",  # Used for convergence history export
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Mathematics",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
    keywords="hp-adaptivity, finite elements, error estimation, mesh refinement",
)
