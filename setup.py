"""Package setup for DOR Tax Rates."""

from setuptools import setup, find_packages

setup(
    name="dor-tax-rates",
    version="1.0.0",
    description="Washington DOR quarterly sales tax rates and jurisdiction boundaries",
    long_description=open("README.md", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*", "examples"]),
    python_requires=">=3.10",
    install_requires=[
        "rich>=13.0",
        "pandas>=2.0",
        "requests>=2.31",
        "pyshp>=2.3,<3",
        "shapely>=2.0",
        "pyproj>=3.6",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "dor-tax=dor_tax.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Financial and Insurance Industry",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Scientific/Engineering :: GIS",
        "Topic :: Office/Business :: Financial :: Accounting",
    ],
    keywords="sales-tax washington dor rates gis shapefile geojson",
)
