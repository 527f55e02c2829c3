from __future__ import annotations

import sys

from alembic.autogenerate import api as ag_api
from alembic.runtime.migration import MigrationContext

from charitydraw.db.engine import make_engine
from charitydraw.models import Base

# Alembic's own bookkeeping table is never part of the models.
IGNORED_TABLES = {"alembic_version"}


def _include_object(obj, name, type_, reflected, compare_to) -> bool:
    return not (type_ == "table" and name in IGNORED_TABLES)


def _describe(ops, depth: int = 0) -> list[str]:
    lines: list[str] = []
    for op in ops:
        lines.append(f"{'  ' * depth}- {op}")
        nested = getattr(op, "ops", None)
        if nested:
            lines.extend(_describe(nested, depth + 1))
    return lines


def main() -> int:
    """Compare the model metadata against the configured database.

    Exit code 0 means no drift, 1 means differences were found and 2 means
    the comparison itself failed.
    """
    engine = make_engine()
    target = engine.url.render_as_string(hide_password=True)
    try:
        with engine.connect() as connection:
            context = MigrationContext.configure(
                connection=connection,
                opts={
                    "compare_type": True,
                    "include_object": _include_object,
                    "render_as_batch": connection.dialect.name == "sqlite",
                },
            )
            upgrade_ops = ag_api.produce_migrations(context, Base.metadata).upgrade_ops
    except Exception as exc:
        print(f"Schema drift check: ERROR for {target}: {exc}", file=sys.stderr)
        return 2

    if upgrade_ops is None:
        print(f"Schema drift check: ERROR for {target}: no comparison produced.")
        return 2
    if upgrade_ops.is_empty():
        print(f"Schema drift check: OK for {target}.")
        return 0

    print(f"Schema drift check: FAILED for {target}:")
    print("\n".join(_describe(upgrade_ops.ops or [])))
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
