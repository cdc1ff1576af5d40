"""DocShift extensions: pluggable target store adapters."""
