"""Employee benefit batch formatter.

Reads loosely structured employee spreadsheets, CSVs and PDFs, maps them
through saved company processes and writes applicant batch CSV files.
"""

__version__ = "0.1.0"
