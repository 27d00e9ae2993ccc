from setuptools import setup, find_packages

setup(
    name="fmriprep2bv",
    version="0.1.0",
    description="Conversion of fMRIPrep outputs to BrainVoyager file formats",
    packages=find_packages(include=["src", "src.*"]),
    include_package_data=True,
    license="MIT",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Medical Science Apps.",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    entry_points={
        "console_scripts": [
            "fmriprep2bv=src.run:main",
        ],
    },
    install_requires=[
        "click>=8.0.0",
        "pybids>=0.15.1",
        "nibabel>=5.0.0",
        "numpy>=1.20.0",
        "pandas>=1.3.0",
        "scipy>=1.7.0",
        "vtk>=9.1.0",
    ],
    extras_require={
        "test": ["pytest>=7.0.0"],
    },
    python_requires=">=3.9",
)
