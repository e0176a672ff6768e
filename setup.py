"""
Setup script for the pdf-server project.

Allows development installation with `pip install -e .`
"""

from setuptools import setup, find_packages

setup(
    name="pdf-server",
    version="0.1.0",
    packages=find_packages(include=["pdf_server", "pdf_server.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "starlette",
        "uvicorn>=0.27",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "playwright>=1.40",
        "httpx>=0.27",
        "beautifulsoup4>=4.12",
        "python-multipart>=0.0.9",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "pdf-server=pdf_server.main:main",
        ],
    },
)
