"""Setup script for PM Dojo."""

from setuptools import setup, find_namespace_packages

# Read README for long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Read requirements
with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="pm-dojo",
    version="1.0.0",
    author="PM Dojo Contributors",
    description="Podcast-grounded PM interview practice: transcript intelligence extraction and question bank",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/pm-dojo/pm-dojo",
    # Modules import each other as src.pm_dojo.*, so install that tree as-is
    packages=find_namespace_packages(include=["src", "src.pm_dojo", "src.pm_dojo.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7.0", "httpx>=0.24"],
    },
    entry_points={
        "console_scripts": [
            "pm-dojo-pipeline=src.pm_dojo.pipeline.__main__:main",
            "pm-dojo-api=src.pm_dojo.api.__main__:main",
            "pm-dojo-scheduler=src.pm_dojo.scheduler.scheduler:main",
        ],
    },
)
