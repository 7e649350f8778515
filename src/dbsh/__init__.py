PROGRAM_NAME = "dbsh"
PACKAGE_NAME = "Database Shell"
__version__ = "0.3.0"
