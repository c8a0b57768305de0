"""Program enrollment service — eligibility, catalog merge and enrollment orchestration."""
