from setuptools import setup, find_packages

with open("requirements.txt") as f:
    required = [line for line in f.read().splitlines() if line and not line.startswith("#")]

setup(
    name="chatembed",
    version="0.1.0",
    packages=find_packages("src"),
    package_dir={"": "src"},
    install_requires=required,
    extras_require={"test": ["pytest"]},
    python_requires=">=3.10",
    entry_points={"console_scripts": ["chatembed = chatembed.cli:main"]},
    description="Live chat link embedder: resolves links in a chat feed to rich embeds",
)
