import setuptools

with open("refsed/.version") as f:
    version = f.read().strip()

setuptools.setup(
    name="refsed",
    version=version,
    python_requires=">=3.11.0",
    license="Apache-2.0",
    entry_points={"console_scripts": ["refsed = refsed.__main__:main"]},
    packages=["refsed"],
    package_data={"refsed": ["*.sql", ".version"]},
    install_requires=[
        "appdirs",
        "click",
        "tomli-w",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
)
