"""Setup configuration for the transparai analysis backend."""
from setuptools import find_packages, setup

setup(
    name="transparai-backend",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main", "auth", "db"],
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.111.0",
        "uvicorn>=0.29.0",
        "sqlalchemy>=2.0.29",
        "pydantic>=2.7.0",
        "requests>=2.31.0",
        "python-jose>=3.3.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
            "httpx>=0.27.0",
        ],
    },
)
