"""Setup configuration for the Fundry outreach pipeline."""

from setuptools import setup

setup(
    name="fundry_pipeline",
    version="1.0.0",
    description="Fundry - parallel investor research and outreach pipeline",
    py_modules=["fundry_pipeline", "fundry_tools", "llm_client", "progress_log"],
    python_requires=">=3.9",
    install_requires=[
        "openai>=1.30.0",
        "anthropic>=0.34.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.3",
            "pytest-cov>=4.1.0",
            "pytest-mock>=3.12.0",
            "pytest-xdist>=3.5.0",
            "pytest-timeout>=2.2.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "fundry=fundry_tools:main",
            "fundry-pipeline=fundry_pipeline:main",
        ],
    },
)
