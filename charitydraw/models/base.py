from decimal import Decimal

from sqlalchemy.orm import DeclarativeBase

from charitydraw.db.metadata import metadata_obj
from charitydraw.models.id_type import MONEY


class Base(DeclarativeBase):
    metadata = metadata_obj
    # Un-typed ``Mapped[Decimal]`` columns are currency amounts.
    type_annotation_map = {Decimal: MONEY}
