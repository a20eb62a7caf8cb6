from setuptools import setup


setup(
    name="load-doctor",
    version="0.3.0",
    description="Header mapping, row validation and UTC timestamp normalization for logistics load sheets",
    packages=["load_doctor"],
    python_requires=">=3.9",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "requests",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "load-doctor=load_doctor.cli:main",
        ]
    },
)
