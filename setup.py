"""Setup file for development installation."""

from setuptools import setup, find_namespace_packages

setup(
    name="assistant-chat",
    version="0.1.0",
    packages=find_namespace_packages(where="src", include=["assistant_chat*"]),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn>=0.27",
        "python-multipart>=0.0.9",
        "pydantic>=2.5",
        "structlog>=24.1",
        "prometheus-client>=0.19",
        "opentelemetry-instrumentation-fastapi>=0.44b0",
        "openai>=1.40,<2",
        "motor>=3.3",
        "pymongo>=4.5",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
            "httpx>=0.27",
        ],
    },
    entry_points={
        "console_scripts": [
            "assistant-chat=assistant_chat.main:run",
        ],
    },
)
