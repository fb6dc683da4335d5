"""
Aggregate and group-by compilation.

Requested aggregates arrive as ``{"_count": {...}, "_sum": {...}, ...}`` maps
of field names; results come back in the same shape.
"""

from decimal import ROUND_HALF_EVEN, Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import and_, false, func, not_, or_, true

from recipebook.services.async_error_handler import ValidationError
from recipebook.services.query_builder import FieldKind, ModelInfo, OrderTerm, QueryBuilder

AGGREGATE_FUNCTIONS = {
    "_count": func.count,
    "_sum": func.sum,
    "_avg": func.avg,
    "_min": func.min,
    "_max": func.max,
}

ColumnGetter = Callable[[str], Any]


def _label(group: str, field: str) -> str:
    return f"agg{group}__{field}"


class AggregationBuilder:
    """
    Compiles aggregate selections, having filters and aggregate ordering.

    Args:
        builder: Query builder of the client's dialect
    """

    def __init__(self, builder: QueryBuilder):
        self.builder = builder

    def expression(self, info: ModelInfo, group: str, field: str, column_for: ColumnGetter, path: Sequence[str]):
        """One aggregate expression, checked against the field's kind."""
        if group not in AGGREGATE_FUNCTIONS:
            raise ValidationError(f"Unknown aggregate `{group}`", path=[*path, group])
        if group == "_count":
            if field == "_all":
                return func.count()
            info.require_field(field, [*path, group])
            return func.count(column_for(field))

        info.require_field(field, [*path, group])
        if group in ("_sum", "_avg") and not info.is_numeric(field):
            raise ValidationError(f"`{group}` needs a numeric field, `{field}` is not one", path=[*path, group, field])
        if group in ("_min", "_max") and not info.is_comparable(field):
            raise ValidationError(f"`{group}` is not available for `{field}`", path=[*path, group, field])
        return AGGREGATE_FUNCTIONS[group](column_for(field))

    def select_list(
        self,
        info: ModelInfo,
        requested: Dict[str, Dict[str, bool]],
        column_for: ColumnGetter,
        path: Sequence[str] = (),
    ) -> List[Any]:
        columns = []
        for group, fields in requested.items():
            for field in fields:
                columns.append(self.expression(info, group, field, column_for, path).label(_label(group, field)))
        return columns

    def shape(self, info: ModelInfo, requested: Dict[str, Dict[str, bool]], row: Any) -> Dict[str, Dict[str, Any]]:
        """Regroup a result row's labelled aggregates into ``{"_sum": {"field": value}}`` form."""
        result = {}
        for group, fields in requested.items():
            result[group] = {field: coerce(info, group, field, row[_label(group, field)]) for field in fields}
        return result

    def having(self, info: ModelInfo, by: List[str], having: Optional[Dict[str, Any]], path: Sequence[str] = ("having",)):
        if not having:
            return true()
        if not isinstance(having, dict):
            raise ValidationError("`having` must be an object", path=path)

        conditions = []
        for key, value in having.items():
            if key in ("AND", "OR", "NOT"):
                items = value if isinstance(value, list) else [value]
                nested = [self.having(info, by, item, [*path, key]) for item in items]
                if key == "AND":
                    conditions.append(and_(true(), *nested))
                elif key == "OR":
                    conditions.append(or_(false(), *nested))
                else:
                    conditions.extend(not_(item) for item in nested)
                continue

            info.require_field(key, path)
            column_for = info.attr
            if not isinstance(value, dict):
                self._require_grouped(key, by, path)
                conditions.append(self.builder.scalar_condition(info.attr(key), info.kind(key), value, [*path, key]))
                continue

            plain = {op: operand for op, operand in value.items() if not op.startswith("_")}
            if plain:
                self._require_grouped(key, by, path)
                conditions.append(self.builder.scalar_condition(info.attr(key), info.kind(key), plain, [*path, key]))
            for group, operand in value.items():
                if not group.startswith("_"):
                    continue
                expression = self.expression(info, group, key, column_for, [*path, key])
                conditions.append(
                    self.builder.scalar_condition(expression, aggregate_kind(info, group, key), operand, [*path, key, group])
                )

        return and_(true(), *conditions)

    def order_terms(self, info: ModelInfo, by: List[str], order_by: Any, path: Sequence[str] = ("order_by",)) -> List[OrderTerm]:
        entries = order_by if isinstance(order_by, list) else [order_by]
        terms = []
        for entry in entries:
            if not isinstance(entry, dict):
                raise ValidationError("order_by entries must be objects", path=path)
            for key, value in entry.items():
                if key in AGGREGATE_FUNCTIONS:
                    if not isinstance(value, dict):
                        raise ValidationError("Aggregate ordering takes an object of fields", path=[*path, key])
                    for field, direction in value.items():
                        expression = self.expression(info, key, field, info.attr, path)
                        terms.append(self.builder.order_term(expression, direction, [*path, key, field]))
                else:
                    info.require_field(key, path)
                    self._require_grouped(key, by, path)
                    terms.append(self.builder.order_term(info.attr(key), value, [*path, key]))
        return terms

    @staticmethod
    def _require_grouped(field: str, by: List[str], path: Sequence[str]) -> None:
        if field not in by:
            raise ValidationError(
                f"Every field used in `order_by` or `having` must be included in `by`, `{field}` is missing",
                path=[*path, field],
            )

    def check_by(self, info: ModelInfo, by: List[str]) -> None:
        for field in by:
            info.require_field(field, ["by"])
            if info.kind(field) == FieldKind.LIST:
                raise ValidationError(f"Cannot group by the list field `{field}`", path=["by", field])


def aggregate_kind(info: ModelInfo, group: str, field: str) -> FieldKind:
    if group == "_count":
        return FieldKind.INTEGER
    if group == "_avg":
        return FieldKind.DECIMAL
    return info.kind(field)


def coerce(info: ModelInfo, group: str, field: str, value: Any) -> Any:
    """
    Normalize driver aggregate values: counts are ints, Decimal fields stay
    Decimal at the column's scale.
    """
    if group == "_count":
        return int(value or 0)
    if value is None:
        return None
    kind = info.kind(field)
    if kind == FieldKind.DECIMAL:
        if not isinstance(value, Decimal):
            # SQLite hands back floats
            value = Decimal(str(value))
        scale = info.columns[field].type.scale
        if scale is not None:
            value = value.quantize(Decimal(1).scaleb(-scale), rounding=ROUND_HALF_EVEN)
        return value
    if group == "_avg":
        return float(value)
    if kind == FieldKind.INTEGER and group == "_sum":
        return int(value)
    return value
