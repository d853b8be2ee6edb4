"""
Setup script for the lesson-export project.

Allows development installation with `pip install -e .`
"""

from setuptools import setup, find_packages

setup(
    name="lesson-export",
    version="0.3.0",
    packages=find_packages(include=["src", "src.*", "export_service", "export_service.*"]),
    py_modules=["version"],
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "python-dotenv>=1.0",
        "playwright>=1.40",
        "httpx>=0.26",
        "tenacity>=8.2",
        "beautifulsoup4>=4.12",
        "reportlab>=4.0",
        "Pillow>=10.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
)
