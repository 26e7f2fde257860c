import setuptools

with open("README.rst", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="notebookdb",
    version="0.0.1",
    description="Stores notes, grouped into notebooks, in an embedded transactional database.",
    long_description=long_description,
    long_description_content_type="text/x-rst",
    packages=setuptools.find_packages('src'),
    package_dir={'': 'src'},
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    install_requires=[],
    extras_require={
        'test': [
            'pytest',
            'pyfakefs',
        ],
    },
    python_requires='>=3.7',
)
