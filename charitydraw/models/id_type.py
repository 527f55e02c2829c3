from sqlalchemy import BigInteger, Integer, Numeric

# BigInteger keys in production; SQLite only autoincrements INTEGER PRIMARY KEY.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")

# Currency amounts: two decimal places, returned as ``Decimal``.
MONEY = Numeric(12, 2)
