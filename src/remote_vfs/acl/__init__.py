"""Generic three-group access control model and native grant translation."""
