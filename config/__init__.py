"""DocShift configuration."""
