import setuptools

try:
    with open("README.md", "r", encoding="utf-8") as fh:
        long_description = fh.read()
except FileNotFoundError:
    long_description = "Blue-green deployments over FTP with automatic rollback"

setuptools.setup(
    name="slotdeploy",
    version="0.1.0",
    description="Blue-green deployments over FTP with automatic rollback",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=setuptools.find_packages(where="src", include=["slotdeploy", "slotdeploy.*"]),
    install_requires=[
        "aioftp>=0.22",
        "aiofiles>=23.1",
        "pydantic>=2.0",
        "python-dotenv>=1.0",
        "rich>=13.0",
        "typer>=0.9",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "slotdeploy=slotdeploy.cli.main:app",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
)
