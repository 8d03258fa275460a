from setuptools import setup, find_packages

setup(
    name="usagegate",
    version="0.1.0",
    packages=find_packages(include=["usagegate", "usagegate.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "pydantic>=2.6",
        "pydantic-settings>=2.2",
        "boto3>=1.35.50",
        "botocore>=1.35.50",
        "bcrypt>=4.1",
        "PyJWT>=2.8",
        "uvicorn>=0.29",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "httpx>=0.27",
        ],
    },
)
