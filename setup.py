"""Setup script for speechbridge."""

from setuptools import setup, find_packages

setup(
    name="speechbridge",
    version="1.0.0",
    description="Multi-provider transcription, refinement and text-to-speech with health-aware fallback",
    packages=find_packages(include=['speechbridge', 'speechbridge.*']),
    python_requires=">=3.11",
    install_requires=[
        "python-dotenv>=1.0.0",
        "elevenlabs>=2.0.0",
        "structlog>=23.0.0",
        "click>=8.0.0",
        "httpx>=0.25.0",
        "keyring>=24.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "speechbridge=speechbridge.cli.main:cli",
        ],
    },
)
