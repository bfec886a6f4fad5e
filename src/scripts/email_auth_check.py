#!/usr/bin/env python3
"""
email_auth_check.py

Entry point for running the email authentication check. Resolves the SPF,
DKIM and DMARC records of a domain over DNS-over-HTTPS, validates them and
prints a scored report.

Usage:
    python email_auth_check.py example.com
    python email_auth_check.py example.com --selector google --selector s1
"""

from email_auth_check.cli import main

if __name__ == "__main__":
    main()
