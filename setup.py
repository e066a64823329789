from setuptools import setup


setup(
    name="ledger-doctor",
    version="0.1.0",
    description="Local trial-balance ingestion: messy CSV and Excel ledgers in, canonical Particulars/Debit/Credit out",
    packages=["ledger_doctor"],
    python_requires=">=3.9",
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
            "ledger-doctor=ledger_doctor.cli:main",
        ]
    },
)
