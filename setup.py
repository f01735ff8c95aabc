from setuptools import setup, find_packages
import os

install_requires = ["pydantic>=2"]

# Define optional dependencies for development
extras_require = {"dev": ["pytest"]}

setup(
    name="mpcal-compiler",
    version="0.1.0",
    packages=find_packages(where=".", exclude=["tests", "tests.*"]),
    install_requires=install_requires,
    extras_require=extras_require,
    python_requires=">=3.8",
    entry_points={
        "console_scripts": [
            "mpcal = mpcal.cli:main",
        ],
    },
    include_package_data=True,
    package_data={},
    description="Expands Modular PlusCal archetypes, mapping macros and instances into flat PlusCal.",
    long_description=open("README.md").read() if os.path.exists("README.md") else "",
    long_description_content_type="text/markdown",
)
