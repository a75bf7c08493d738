"""IntroCam - record, review and upload a short applicant introduction video."""

__version__ = "0.1.0"
