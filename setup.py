import setuptools

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setuptools.setup(
    name="annotation_export",
    version="0.1.0",
    author="Alejandro Sanchez Ferrer",
    author_email="asanc.tech@gmail.com",
    description="Train/valid/test splitting and multi-format export for image annotation datasets",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=[
        "numpy",
        "pydantic>=2.5",
        "PyYAML",
        "tqdm",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
)
