"""Circle/line extraction and coordinate mapping."""
