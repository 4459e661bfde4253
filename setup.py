import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

# prstack/__init__.py reads this back from the installed metadata
VERSION = "0.1.0"

setuptools.setup(
    name="prstack",
    version=VERSION,
    description="Inspect and land stacks of GitHub pull requests",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(include=("prstack", "prstack.*")),
    include_package_data=True,
    package_data={
        'prstack': ['py.typed'],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.8",
    install_requires=[
        'aiohttp',
        'click',
        'typing_extensions>=3.7.2',
    ],
    extras_require={
        'test': [
            'expecttest',
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'prstack = prstack.cli:main'
        ]
    },
)
