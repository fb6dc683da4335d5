"""
Relation resolution and record shaping.

To-one relations requested through ``include`` or ``select`` are joined into
the parent statement with ``joinedload``. To-many relations are loaded by one
follow-up query per relation and level, filtered on the parent keys, and then
paginated per parent in memory.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import MANYTOONE, joinedload
from sqlalchemy.sql.elements import ColumnElement

from recipebook.schemas.query import FindArgs
from recipebook.services.async_error_handler import ErrorCode, KnownRequestError, ValidationError
from recipebook.services.query_builder import ModelInfo, OrderTerm, QueryBuilder, pydantic_to_validation_error

logger = logging.getLogger(__name__)


@dataclass
class Selection:
    """Scalar fields and relations to put into each record."""

    fields: List[str]
    relations: Dict[str, "RelationArgs"] = field(default_factory=dict)


@dataclass
class RelationArgs:
    selection: Selection
    condition: Optional[ColumnElement] = None
    terms: List[OrderTerm] = field(default_factory=list)
    cursor: Optional[Dict[str, Any]] = None
    take: Optional[int] = None
    skip: Optional[int] = None


class RelationResolver:
    """
    Builds selections from select / include / omit arguments and turns loaded
    ORM objects into record dicts.

    Args:
        builder: Query builder of the client's dialect
        default_omit: Client-level omit defaults keyed by entity name
    """

    def __init__(self, builder: QueryBuilder, default_omit: Optional[Dict[str, Dict[str, bool]]] = None):
        self.builder = builder
        self.default_omit = default_omit or {}

    def build_selection(
        self,
        info: ModelInfo,
        select_args: Optional[Dict[str, Any]] = None,
        include: Optional[Dict[str, Any]] = None,
        omit: Optional[Dict[str, bool]] = None,
        path: Sequence[str] = (),
    ) -> Selection:
        if select_args is not None and include is not None:
            raise ValidationError("Please either use `include` or `select`, but not both at the same time", path=path)
        if select_args is not None and omit:
            raise ValidationError("Please either use `omit` or `select`, but not both at the same time", path=path)

        omitted = {name for name, flag in self.default_omit.get(info.entity, {}).items() if flag}
        for name, flag in (omit or {}).items():
            info.require_field(name, [*path, "omit"])
            if flag:
                omitted.add(name)
            else:
                omitted.discard(name)

        relations: Dict[str, RelationArgs] = {}
        if select_args is not None:
            fields = []
            for name, value in select_args.items():
                if name in info.columns:
                    if value is True:
                        fields.append(name)
                    elif value is not False:
                        raise ValidationError("Scalar fields are selected with true or false", path=[*path, "select", name])
                elif name in info.relationships:
                    if value:
                        relations[name] = self._relation_args(info, name, value, [*path, "select", name])
                else:
                    raise ValidationError(f"Unknown field `{name}` for select on {info.name}", path=[*path, "select", name])
            if not fields and not relations:
                raise ValidationError("The `select` statement must select at least one field", path=[*path, "select"])
            return Selection(fields, relations)

        for name, value in (include or {}).items():
            if name not in info.relationships:
                raise ValidationError(f"Unknown relation `{name}` for include on {info.name}", path=[*path, "include", name])
            if value:
                relations[name] = self._relation_args(info, name, value, [*path, "include", name])

        fields = [name for name in info.columns if name not in omitted]
        return Selection(fields, relations)

    def _relation_args(self, info: ModelInfo, name: str, value: Any, path: List[str]) -> RelationArgs:
        nested = {} if value is True else value
        if not isinstance(nested, dict):
            raise ValidationError("Relations are selected with true or an object of arguments", path=path)
        try:
            args = FindArgs.model_validate(nested)
        except PydanticValidationError as e:
            raise pydantic_to_validation_error(e, path) from e

        target = info.relation_target(name)
        to_many = info.relationships[name].uselist
        paging = ("where", "order_by", "cursor", "take", "skip", "distinct")
        if not to_many and any(getattr(args, key) is not None for key in paging):
            raise ValidationError("To-one relations accept only select, include and omit", path=path)
        if args.distinct is not None:
            raise ValidationError("`distinct` is not supported on nested relations", path=path)
        for key in args.cursor or {}:
            target.require_field(key, [*path, "cursor"])

        return RelationArgs(
            selection=self.build_selection(target, args.select, args.include, args.omit, path),
            condition=self.builder.build_where(target, args.where, [*path, "where"]) if args.where else None,
            terms=self.builder.build_order_by(target, args.order_by, [*path, "order_by"]),
            cursor=args.cursor,
            take=args.take,
            skip=args.skip,
        )

    def loader_options(self, info: ModelInfo, selection: Selection, parent=None) -> list:
        """joinedload options for every to-one relation in the selection, chained through nested levels."""
        options = []
        for name, args in selection.relations.items():
            if info.relationships[name].uselist:
                continue
            attribute = info.attr(name)
            option = joinedload(attribute) if parent is None else parent.joinedload(attribute)
            options.append(option)
            options.extend(self.loader_options(info.relation_target(name), args.selection, option))
        return options

    async def serialize(
        self,
        session: AsyncSession,
        info: ModelInfo,
        objects: Sequence[Any],
        selection: Selection,
    ) -> List[Dict[str, Any]]:
        """
        Shape loaded objects into records, resolving the selected relations.

        Args:
            session: Session the objects were loaded in
            info: Metadata of the objects' model
            objects: ORM objects loaded with ``loader_options`` for this selection
            selection: Fields and relations to emit

        Returns:
            One record dict per object, in the same order
        """
        records = [{name: getattr(obj, name) for name in selection.fields} for obj in objects]
        if not objects:
            return records

        for name, args in selection.relations.items():
            relationship = info.relationships[name]
            target = info.relation_target(name)

            if relationship.uselist:
                local_key, _ = info.relation_keys(name)
                groups = await self._load_to_many(session, info, name, objects, args)
                for record, obj in zip(records, objects):
                    record[name] = groups.get(getattr(obj, local_key), [])
                continue

            related = [getattr(obj, name) for obj in objects]
            self._check_required(info, name, objects, related)
            present = [item for item in related if item is not None]
            nested = await self.serialize(session, target, present, args.selection)
            by_identity = {id(item): record for item, record in zip(present, nested)}
            for record, item in zip(records, related):
                record[name] = None if item is None else by_identity[id(item)]

        return records

    def _check_required(self, info: ModelInfo, name: str, objects: Sequence[Any], related: Sequence[Any]) -> None:
        relationship = info.relationships[name]
        if relationship.direction is not MANYTOONE:
            return
        local_key, _ = info.relation_keys(name)
        if info.columns[local_key].nullable:
            return
        for obj, item in zip(objects, related):
            if item is None:
                target = info.relation_target(name)
                raise KnownRequestError(
                    ErrorCode.INCONSISTENT_RELATION,
                    f"The required relation `{info.name}.{name}` points to a missing {target.name} "
                    f"({local_key}={getattr(obj, local_key)})",
                    meta={"relation": f"{info.name}.{name}"},
                )

    async def _load_to_many(
        self,
        session: AsyncSession,
        info: ModelInfo,
        name: str,
        parents: Sequence[Any],
        args: RelationArgs,
    ) -> Dict[Any, List[Dict[str, Any]]]:
        target = info.relation_target(name)
        local_key, remote_key = info.relation_keys(name)
        keys = {getattr(parent, local_key) for parent in parents} - {None}
        if not keys:
            return {}

        terms = list(args.terms)
        pk = target.attr(target.pk_name)
        if not any(term.expression is pk for term in terms):
            terms.append(OrderTerm(pk))

        stmt = select(target.model).where(target.attr(remote_key).in_(keys))
        if args.condition is not None:
            stmt = stmt.where(args.condition)
        stmt = (
            stmt.order_by(*[term.clause() for term in terms])
            .options(*self.loader_options(target, args.selection))
            .execution_options(populate_existing=True)
        )
        children = (await session.execute(stmt)).unique().scalars().all()
        logger.debug(f"Loaded {len(children)} {target.name} rows for {info.name}.{name}")

        grouped = defaultdict(list)
        for child in children:
            grouped[getattr(child, remote_key)].append(child)
        paged = {key: page(rows, args) for key, rows in grouped.items()}

        flat = [child for rows in paged.values() for child in rows]
        records = await self.serialize(session, target, flat, args.selection)
        by_identity = {id(child): record for child, record in zip(flat, records)}
        return {key: [by_identity[id(child)] for child in rows] for key, rows in paged.items()}


def page(rows: List[Any], args: RelationArgs) -> List[Any]:
    """Apply cursor, skip and take to one parent's already ordered children."""
    take = args.take
    if args.cursor:
        index = next(
            (i for i, row in enumerate(rows) if all(getattr(row, key) == value for key, value in args.cursor.items())),
            None,
        )
        if index is None:
            return []
        rows = rows[: index + 1] if take is not None and take < 0 else rows[index:]

    skip = args.skip or 0
    if take is not None and take < 0:
        end = max(len(rows) - skip, 0)
        return rows[max(end + take, 0):end]
    rows = rows[skip:]
    return rows if take is None else rows[:take]
