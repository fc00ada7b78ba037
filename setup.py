"""Setup script for the pooled-yield allocation engine."""

from setuptools import setup, find_packages

setup(
    name="yield-aggregator",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "pandas>=2.0.0",
        "numpy>=1.24.0",
        "requests>=2.31.0",
        "python-dotenv>=1.0.0",
        "tqdm>=4.65.0",
        "fastapi>=0.100.0",
        "pydantic>=2.0.0",
        "uvicorn>=0.23.0",
        "prometheus-client>=0.17.0",
        "schedule>=1.2.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "httpx>=0.24.0",
        ],
    },
    python_requires=">=3.8",
)
