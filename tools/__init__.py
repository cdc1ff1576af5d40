"""DocShift command-line tools."""
