from setuptools import setup


setup(
    name="sheet-intake",
    version="0.3.0",
    description="Template-checked bulk import of spreadsheet tables with grouped rows and error workbooks",
    packages=["sheet_intake"],
    python_requires=">=3.10",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "ods": ["odfpy"],
        "all": ["xlrd", "odfpy"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "sheet-intake=sheet_intake.cli:main",
        ]
    },
)
