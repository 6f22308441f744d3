"""Microsoft Graph HTTP client and drive item field names."""
