"""Microsoft Graph drive item and permission field names."""

# Graph API JSON field names
FIELD_ID = "id"
FIELD_NAME = "name"
FIELD_FOLDER = "folder"
FIELD_FILE = "file"
FIELD_SIZE = "size"
FIELD_MIME_TYPE = "mimeType"
FIELD_ETAG = "eTag"
FIELD_LAST_MODIFIED = "lastModifiedDateTime"
FIELD_WEB_URL = "webUrl"
FIELD_CREATED_BY = "createdBy"
FIELD_USER = "user"
FIELD_DISPLAY_NAME = "displayName"
FIELD_ROLES = "roles"
FIELD_LINK = "link"
FIELD_SCOPE = "scope"
FIELD_GRANTED_TO = "grantedToV2"
FIELD_CONFLICT_BEHAVIOR = "@microsoft.graph.conflictBehavior"

# Permission roles and sharing link scopes
ROLE_READ = "read"
ROLE_WRITE = "write"
ROLE_OWNER = "owner"
SCOPE_ANONYMOUS = "anonymous"
SCOPE_ORGANIZATION = "organization"

# OData response keys
ODATA_NEXT_LINK = "@odata.nextLink"
ODATA_VALUE = "value"

# Sharing link requests
FIELD_TYPE = "type"
FIELD_EXPIRATION = "expirationDateTime"
LINK_TYPE_VIEW = "view"
