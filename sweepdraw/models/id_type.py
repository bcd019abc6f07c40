from sqlalchemy import BigInteger, Integer, String

# Use BigInteger by default, with a SQLite-safe Integer variant for autoincrement PKs.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")

# Public string identifiers embedded in draw seeds.
PUBLIC_ID_TYPE = String(40)
