from sqlalchemy import JSON, String
from sqlalchemy.dialects.postgresql import ARRAY

# Native text[] on PostgreSQL, a JSON array elsewhere; both keep element order
StringList = JSON().with_variant(ARRAY(String(100)), "postgresql")
