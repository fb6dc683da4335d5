"""
Generic async repository.

Every public operation opens one session scope (one transaction outside of
``client.transaction``), so nested writes and the reads they depend on commit
or roll back together with the main statement.
"""

import logging
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import and_, delete, false, func, insert, update
from sqlalchemy import select as sql_select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from recipebook.core.options import ErrorFormat
from recipebook.schemas.query import (
    AggregateArgs,
    FindArgs,
    GroupByArgs,
    IntFieldUpdate,
    StringListUpdate,
)
from recipebook.services.aggregation import AggregationBuilder
from recipebook.services.async_error_handler import NotFoundError, ValidationError, handle_async_db_errors
from recipebook.services.query_builder import (
    FieldKind,
    ModelInfo,
    OrderTerm,
    QueryBuilder,
    model_info,
    pydantic_to_validation_error,
)
from recipebook.services.relations import RelationResolver, Selection
from recipebook.utils.logger import LogEmitter

logger = logging.getLogger(__name__)

SessionScope = Callable[[], AbstractAsyncContextManager]


@dataclass
class RepositoryContext:
    """Everything a repository needs from the client that owns it."""

    session_scope: SessionScope
    dialect_name: str
    emitter: LogEmitter
    error_format: ErrorFormat = ErrorFormat.COLORLESS
    omit: Dict[str, Dict[str, bool]] = field(default_factory=dict)
    repositories: Dict[Type, "AsyncRepository"] = field(default_factory=dict)

    def __post_init__(self):
        self.builder = QueryBuilder(self.dialect_name)
        self.relations = RelationResolver(self.builder, self.omit)
        self.aggregation = AggregationBuilder(self.builder)

    def repository_for(self, model: Type) -> "AsyncRepository":
        return self.repositories[model]


class AsyncRepository:
    """
    Async data access for one model.

    Subclasses set ``model``, ``create_schema`` and ``update_schema`` and may
    override ``before_create`` / ``before_update`` to enforce row invariants.
    """

    model: Type = None
    create_schema: Type[BaseModel] = None
    update_schema: Type[BaseModel] = None

    def __init__(self, context: RepositoryContext):
        self.context = context
        self.info: ModelInfo = model_info(self.model)
        self.table = self.model.__table__
        context.repositories[self.model] = self

    @property
    def builder(self) -> QueryBuilder:
        return self.context.builder

    @property
    def pk(self):
        return self.info.attr(self.info.pk_name)

    # Hooks

    async def before_create(self, session: AsyncSession, values: Dict[str, Any],
                            path: Sequence[str] = ("data",)) -> Dict[str, Any]:
        return values

    async def before_update(self, session: AsyncSession, values: Dict[str, Any], condition,
                            path: Sequence[str] = ("data",)) -> Dict[str, Any]:
        return values

    # Reads

    @handle_async_db_errors("find_unique")
    async def find_unique(self, where: Dict[str, Any], select: Optional[Dict] = None,
                          include: Optional[Dict] = None, omit: Optional[Dict] = None) -> Optional[Dict[str, Any]]:
        return await self._find_unique(where, select, include, omit)

    @handle_async_db_errors("find_unique_or_throw")
    async def find_unique_or_throw(self, where: Dict[str, Any], select: Optional[Dict] = None,
                                   include: Optional[Dict] = None, omit: Optional[Dict] = None) -> Dict[str, Any]:
        record = await self._find_unique(where, select, include, omit)
        if record is None:
            raise NotFoundError(f"No {self.info.name} found", meta={"where": where})
        return record

    @handle_async_db_errors("find_first")
    async def find_first(self, **kwargs) -> Optional[Dict[str, Any]]:
        return await self._find_first(**kwargs)

    @handle_async_db_errors("find_first_or_throw")
    async def find_first_or_throw(self, **kwargs) -> Dict[str, Any]:
        record = await self._find_first(**kwargs)
        if record is None:
            raise NotFoundError(f"No {self.info.name} found", meta={"where": kwargs.get("where")})
        return record

    @handle_async_db_errors("find_many")
    async def find_many(self, **kwargs) -> List[Dict[str, Any]]:
        args = self._find_args(**kwargs)
        async with self.context.session_scope() as session:
            return await self._find(session, args)

    @handle_async_db_errors("fetch_related")
    async def fetch_related(self, where: Dict[str, Any], relation: str, **kwargs) -> Any:
        """
        Resolve one relation of a single record on demand.

        Args:
            where: Unique filter of the parent record
            relation: Relation name on this model
            **kwargs: Nested arguments (where, order_by, take, select, ...)

        Returns:
            The related record, None, or a list for to-many relations
        """
        if relation not in self.info.relationships:
            raise ValidationError(f"Unknown relation `{relation}` for model {self.info.name}", path=["relation"])
        selection = self._selection(None, {relation: kwargs or True}, None)
        condition = self.builder.build_unique_where(self.info, where)
        async with self.context.session_scope() as session:
            obj = await self._load_one(session, condition, selection)
            if obj is None:
                raise NotFoundError(f"No {self.info.name} found", meta={"where": where})
            record = (await self.context.relations.serialize(session, self.info, [obj], selection))[0]
        return record[relation]

    @handle_async_db_errors("count")
    async def count(self, where: Optional[Dict] = None, cursor: Optional[Dict] = None, take: Optional[int] = None,
                    skip: Optional[int] = None, order_by: Any = None, select: Optional[Dict[str, bool]] = None):
        fields = [name for name, flag in (select or {}).items() if flag]
        for name in fields:
            if name != "_all":
                self.info.require_field(name, ["select"])
        args = self._find_args(where=where, cursor=cursor, take=take, skip=skip, order_by=order_by)

        async with self.context.session_scope() as session:
            paginated = await self._paginated(session, args)
            if paginated is None:
                return {name: 0 for name in fields} if select is not None else 0
            stmt, _ = paginated
            subquery = self._limit(stmt, args.skip, args.take).subquery()
            if select is None:
                return (await session.execute(select_count(subquery))).scalar_one()
            columns = [
                (func.count() if name == "_all" else func.count(subquery.c[self.info.columns[name].name])).label(name)
                for name in fields
            ]
            row = (await session.execute(sql_select(*columns).select_from(subquery))).one()
        return {name: int(row._mapping[name]) for name in fields}

    @handle_async_db_errors("aggregate")
    async def aggregate(self, **kwargs) -> Dict[str, Dict[str, Any]]:
        args = self._validate(AggregateArgs, kwargs)
        requested = args.requested()
        find_args = self._find_args(where=args.where, order_by=args.order_by, cursor=args.cursor,
                                    take=args.take, skip=args.skip)

        async with self.context.session_scope() as session:
            paginated = await self._paginated(session, find_args)
            if paginated is None:
                stmt = sql_select(self.model).where(false())
            else:
                stmt = self._limit(paginated[0], args.skip, args.take)
            subquery = stmt.subquery()

            def column_for(name):
                return subquery.c[self.info.columns[name].name]

            columns = self.context.aggregation.select_list(self.info, requested, column_for)
            if not columns:
                return {}
            row = (await session.execute(sql_select(*columns).select_from(subquery))).one()
        return self.context.aggregation.shape(self.info, requested, row._mapping)

    @handle_async_db_errors("group_by")
    async def group_by(self, **kwargs) -> List[Dict[str, Any]]:
        args = self._validate(GroupByArgs, kwargs)
        aggregation = self.context.aggregation
        aggregation.check_by(self.info, args.by)
        requested = args.requested()

        by_columns = [self.info.attr(name).label(name) for name in args.by]
        stmt = (
            sql_select(*by_columns, *aggregation.select_list(self.info, requested, self.info.attr))
            .where(self.builder.build_where(self.info, args.where))
            .group_by(*[self.info.attr(name) for name in args.by])
            .having(aggregation.having(self.info, args.by, args.having))
        )
        if args.order_by:
            stmt = stmt.order_by(*[term.clause() for term in aggregation.order_terms(self.info, args.by, args.order_by)])
        stmt = self._limit(stmt, args.skip, args.take)

        async with self.context.session_scope() as session:
            rows = (await session.execute(stmt)).all()

        groups = []
        for row in rows:
            mapping = row._mapping
            group = {name: mapping[name] for name in args.by}
            group.update(aggregation.shape(self.info, requested, mapping))
            groups.append(group)
        return groups

    # Writes

    @handle_async_db_errors("create")
    async def create(self, data: Any, select: Optional[Dict] = None,
                     include: Optional[Dict] = None, omit: Optional[Dict] = None) -> Dict[str, Any]:
        selection = self._selection(select, include, omit)
        async with self.context.session_scope() as session:
            obj = await self._create_one(session, data, ["data"])
            return await self._reload(session, getattr(obj, self.info.pk_name), selection)

    @handle_async_db_errors("create_many")
    async def create_many(self, data: Sequence[Any], skip_duplicates: bool = False) -> int:
        rows = []
        for index, item in enumerate(data):
            scalars, nested = self._split_write(item, ["data", str(index)])
            if nested:
                raise ValidationError("Nested relation writes are not supported by create_many", path=["data", str(index)])
            rows.append(self._validate_create(scalars, ["data", str(index)]))
        if not rows:
            return 0

        if not skip_duplicates:
            stmt = insert(self.table)
        elif self.context.dialect_name == "postgresql":
            stmt = pg_insert(self.table).on_conflict_do_nothing()
        elif self.context.dialect_name == "sqlite":
            stmt = sqlite_insert(self.table).on_conflict_do_nothing()
        else:
            raise ValidationError(f"skip_duplicates is not supported on {self.context.dialect_name}")

        async with self.context.session_scope() as session:
            rows = [
                await self.before_create(session, values, ["data", str(index)]) for index, values in enumerate(rows)
            ]
            result = await session.execute(stmt.returning(self.table.c[self.pk.key]), rows)
            created = len(result.all())
        logger.info(f"Created {created} {self.info.name} rows")
        return created

    @handle_async_db_errors("update")
    async def update(self, where: Dict[str, Any], data: Any, select: Optional[Dict] = None,
                     include: Optional[Dict] = None, omit: Optional[Dict] = None) -> Dict[str, Any]:
        selection = self._selection(select, include, omit)
        condition = self.builder.build_unique_where(self.info, where)
        async with self.context.session_scope() as session:
            obj = (await session.execute(sql_select(self.model).where(condition))).scalars().first()
            if obj is None:
                raise NotFoundError(f"No {self.info.name} found to update", meta={"where": where})
            await self._update_object(session, obj, data, ["data"])
            return await self._reload(session, getattr(obj, self.info.pk_name), selection)

    @handle_async_db_errors("update_many")
    async def update_many(self, data: Any, where: Optional[Dict[str, Any]] = None) -> int:
        scalars, nested = self._split_write(data, ["data"])
        if nested:
            raise ValidationError("Nested relation writes are not supported by update_many", path=["data"])
        values = self._validate_update(scalars, ["data"], allow_push=False)
        condition = self.builder.build_where(self.info, where)

        async with self.context.session_scope() as session:
            values = await self.before_update(session, values, condition, ["data"])
            assignments = self._assignments(values)
            if not assignments:
                return (await session.execute(select_count(sql_select(self.model).where(condition).subquery()))).scalar_one()
            result = await session.execute(update(self.table).where(condition).values(**assignments))
            return result.rowcount

    @handle_async_db_errors("upsert")
    async def upsert(self, where: Dict[str, Any], create: Any, update: Any, select: Optional[Dict] = None,
                     include: Optional[Dict] = None, omit: Optional[Dict] = None) -> Dict[str, Any]:
        selection = self._selection(select, include, omit)
        condition = self.builder.build_unique_where(self.info, where)
        async with self.context.session_scope() as session:
            obj = (await session.execute(sql_select(self.model).where(condition))).scalars().first()
            if obj is None:
                obj = await self._create_one(session, create, ["create"])
            else:
                await self._update_object(session, obj, update, ["update"])
            return await self._reload(session, getattr(obj, self.info.pk_name), selection)

    @handle_async_db_errors("delete")
    async def delete(self, where: Dict[str, Any], select: Optional[Dict] = None,
                     include: Optional[Dict] = None, omit: Optional[Dict] = None) -> Dict[str, Any]:
        selection = self._selection(select, include, omit)
        condition = self.builder.build_unique_where(self.info, where)
        async with self.context.session_scope() as session:
            obj = await self._load_one(session, condition, selection)
            if obj is None:
                raise NotFoundError(f"No {self.info.name} found to delete", meta={"where": where})
            record = (await self.context.relations.serialize(session, self.info, [obj], selection))[0]
            await session.execute(delete(self.table).where(self.pk == getattr(obj, self.info.pk_name)))
        return record

    @handle_async_db_errors("delete_many")
    async def delete_many(self, where: Optional[Dict[str, Any]] = None) -> int:
        condition = self.builder.build_where(self.info, where)
        async with self.context.session_scope() as session:
            result = await session.execute(delete(self.table).where(condition))
            return result.rowcount

    # Internals

    def _validate(self, schema: Type[BaseModel], values: Dict[str, Any], path: Sequence[str] = ()):
        try:
            return schema.model_validate(values)
        except PydanticValidationError as e:
            raise pydantic_to_validation_error(e, path) from e

    def _find_args(self, **kwargs) -> FindArgs:
        return self._validate(FindArgs, {key: value for key, value in kwargs.items() if value is not None})

    def _selection(self, select_args, include, omit) -> Selection:
        return self.context.relations.build_selection(self.info, select_args, include, omit)

    async def _find_unique(self, where, select_args, include, omit) -> Optional[Dict[str, Any]]:
        selection = self._selection(select_args, include, omit)
        condition = self.builder.build_unique_where(self.info, where)
        async with self.context.session_scope() as session:
            obj = await self._load_one(session, condition, selection)
            if obj is None:
                return None
            return (await self.context.relations.serialize(session, self.info, [obj], selection))[0]

    async def _find_first(self, **kwargs) -> Optional[Dict[str, Any]]:
        args = self._find_args(**kwargs)
        args = args.model_copy(update={"take": -1 if (args.take or 0) < 0 else 1})
        async with self.context.session_scope() as session:
            records = await self._find(session, args)
        return records[0] if records else None

    async def _load_one(self, session: AsyncSession, condition, selection: Selection):
        stmt = (
            sql_select(self.model)
            .where(condition)
            .options(*self.context.relations.loader_options(self.info, selection))
            .execution_options(populate_existing=True)
        )
        return (await session.execute(stmt)).unique().scalars().first()

    async def _reload(self, session: AsyncSession, pk_value: Any, selection: Selection) -> Dict[str, Any]:
        obj = await self._load_one(session, self.pk == pk_value, selection)
        return (await self.context.relations.serialize(session, self.info, [obj], selection))[0]

    async def _paginated(self, session: AsyncSession, args: FindArgs) -> Optional[Tuple[Select, bool]]:
        """
        Filtered and ordered statement with the cursor applied.

        Returns:
            (statement, reversed) or None when the cursor row does not exist
        """
        condition = self.builder.build_where(self.info, args.where)
        terms = self.builder.build_order_by(self.info, args.order_by)
        reverse = args.take is not None and args.take < 0

        if args.cursor is not None or reverse:
            if not any(term.expression is self.pk for term in terms):
                terms.append(OrderTerm(self.pk))
        if reverse:
            terms = [term.reversed() for term in terms]

        if args.cursor is not None:
            cursor_condition = self.builder.build_unique_where(self.info, args.cursor, ("cursor",))
            row = (await session.execute(
                sql_select(*[term.expression for term in terms]).select_from(self.model).where(cursor_condition)
            )).first()
            if row is None:
                return None
            condition = and_(condition, self.builder.cursor_condition(terms, list(row)))

        stmt = sql_select(self.model).where(condition).order_by(*[term.clause() for term in terms])
        return stmt, reverse

    @staticmethod
    def _limit(stmt, skip: Optional[int], take: Optional[int]):
        if skip:
            stmt = stmt.offset(skip)
        if take is not None:
            stmt = stmt.limit(abs(take))
        return stmt

    async def _find(self, session: AsyncSession, args: FindArgs) -> List[Dict[str, Any]]:
        selection = self._selection(args.select, args.include, args.omit)
        for name in args.distinct or []:
            self.info.require_field(name, ["distinct"])

        paginated = await self._paginated(session, args)
        if paginated is None:
            return []
        stmt, reverse = paginated
        stmt = stmt.options(*self.context.relations.loader_options(self.info, selection))
        stmt = stmt.execution_options(populate_existing=True)
        if not args.distinct:
            stmt = self._limit(stmt, args.skip, args.take)

        objects = list((await session.execute(stmt)).unique().scalars().all())
        if args.distinct:
            seen = set()
            unique_objects = []
            for obj in objects:
                key = tuple(_hashable(getattr(obj, name)) for name in args.distinct)
                if key not in seen:
                    seen.add(key)
                    unique_objects.append(obj)
            objects = unique_objects[args.skip or 0:]
            if args.take is not None:
                objects = objects[:abs(args.take)]
        if reverse:
            objects.reverse()
        return await self.context.relations.serialize(session, self.info, objects, selection)

    def _split_write(self, data: Any, path: Sequence[str]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        if isinstance(data, BaseModel):
            data = data.model_dump(exclude_unset=True)
        if not isinstance(data, dict):
            raise ValidationError("Write data must be an object", path=path)
        scalars, nested = {}, {}
        for key, value in data.items():
            if key in self.info.relationships:
                nested[key] = value
            else:
                scalars[key] = value
        return scalars, nested

    def _validate_create(self, scalars: Dict[str, Any], path: Sequence[str]) -> Dict[str, Any]:
        return self._validate(self.create_schema, scalars, path).model_dump()

    def _validate_update(self, scalars: Dict[str, Any], path: Sequence[str], allow_push: bool) -> Dict[str, Any]:
        validated = self._validate(self.update_schema, scalars, path)
        values = {key: getattr(validated, key) for key in validated.model_fields_set}
        for key, value in values.items():
            if value is None and not self.info.columns[key].nullable:
                raise ValidationError(f"`{key}` cannot be set to null", path=[*path, key])
            if isinstance(value, StringListUpdate) and "push" in value.model_fields_set and not allow_push:
                raise ValidationError("`push` is only supported by update", path=[*path, key])
            if isinstance(value, IntFieldUpdate):
                operation = next(iter(value.model_fields_set))
                operand = getattr(value, operation)
                if operand is None:
                    raise ValidationError(f"`{operation}` needs a value", path=[*path, key, operation])
                if operation == "divide" and operand == 0:
                    raise ValidationError("Division by zero", path=[*path, key, operation])
        return values

    def _assignments(self, values: Dict[str, Any], current: Any = None) -> Dict[str, Any]:
        """Column values for an UPDATE, with atomic operations turned into SQL expressions."""
        assignments = {}
        for key, value in values.items():
            column = self.table.c[self.info.columns[key].name]
            if isinstance(value, StringListUpdate):
                if "push" in value.model_fields_set:
                    items = value.push if isinstance(value.push, list) else [value.push]
                    assignments[column.name] = list(getattr(current, key) or []) + items
                else:
                    assignments[column.name] = list(value.set or [])
            elif isinstance(value, IntFieldUpdate):
                operation = next(iter(value.model_fields_set))
                operand = getattr(value, operation)
                if operation == "set":
                    assignments[column.name] = operand
                elif operation == "increment":
                    assignments[column.name] = column + operand
                elif operation == "decrement":
                    assignments[column.name] = column - operand
                elif operation == "multiply":
                    assignments[column.name] = column * operand
                elif self.info.kind(key) == FieldKind.INTEGER:
                    assignments[column.name] = column // operand
                else:
                    assignments[column.name] = column / operand
            else:
                assignments[column.name] = value
        return assignments

    async def _connect_to_one(self, session: AsyncSession, scalars: Dict[str, Any],
                              nested: Dict[str, Any], path: Sequence[str]) -> Dict[str, Any]:
        """Resolve to-one connect / disconnect into foreign key values; returns the to-many writes."""
        to_many = {}
        for name, operation in nested.items():
            if self.info.relationships[name].uselist:
                to_many[name] = operation
                continue
            if not isinstance(operation, dict) or len(operation) != 1 or not set(operation) <= {"connect", "disconnect"}:
                raise ValidationError("To-one relation writes take exactly one of `connect`, `disconnect`", path=[*path, name])

            local_key, remote_key = self.info.relation_keys(name)
            if local_key in scalars:
                raise ValidationError(f"`{local_key}` and `{name}` cannot both be written", path=[*path, name])

            if "disconnect" in operation:
                if not self.info.columns[local_key].nullable:
                    raise ValidationError(f"The required relation `{name}` cannot be disconnected", path=[*path, name])
                if operation["disconnect"]:
                    scalars[local_key] = None
                continue

            target = self.info.relation_target(name)
            condition = self.builder.build_unique_where(target, operation["connect"], [*path, name, "connect"])
            value = (await session.execute(sql_select(target.attr(remote_key)).where(condition))).scalar_one_or_none()
            if value is None:
                raise NotFoundError(f"No {target.name} found to connect to `{self.info.name}.{name}`",
                                    meta={"relation": name})
            scalars[local_key] = value
        return to_many

    def _check_to_many(self, to_many: Dict[str, Any], allowed: set, path: Sequence[str]) -> None:
        for name, operations in to_many.items():
            if not isinstance(operations, dict) or not operations or not set(operations) <= allowed:
                options = ", ".join(f"`{op}`" for op in sorted(allowed))
                raise ValidationError(f"To-many relation writes accept {options}", path=[*path, name])

    async def _create_one(self, session: AsyncSession, data: Any, path: Sequence[str]):
        scalars, nested = self._split_write(data, path)
        to_many = {name: ops for name, ops in nested.items() if self.info.relationships[name].uselist}
        self._check_to_many(to_many, {"create"}, path)
        await self._connect_to_one(session, scalars, nested, path)
        values = await self.before_create(session, self._validate_create(scalars, path), path)

        obj = self.model(**values)
        session.add(obj)
        await session.flush()
        await self._write_to_many(session, obj, to_many, path)
        return obj

    async def _update_object(self, session: AsyncSession, obj: Any, data: Any, path: Sequence[str]) -> None:
        scalars, nested = self._split_write(data, path)
        to_many = {name: ops for name, ops in nested.items() if self.info.relationships[name].uselist}
        self._check_to_many(to_many, {"create", "delete_many"}, path)
        values = self._validate_update(scalars, path, allow_push=True)
        await self._connect_to_one(session, values, {k: v for k, v in nested.items() if k not in to_many}, path)

        pk_value = getattr(obj, self.info.pk_name)
        values = await self.before_update(session, values, self.pk == pk_value, path)
        assignments = self._assignments(values, current=obj)
        if assignments:
            await session.execute(update(self.table).where(self.table.c[self.pk.key] == pk_value).values(**assignments))
        await self._write_to_many(session, obj, to_many, path)

    async def _write_to_many(self, session: AsyncSession, obj: Any, to_many: Dict[str, Any], path: Sequence[str]) -> None:
        for name, operations in to_many.items():
            local_key, remote_key = self.info.relation_keys(name)
            parent_key = getattr(obj, local_key)
            repository = self.context.repository_for(self.info.relationships[name].mapper.class_)

            if "delete_many" in operations:
                condition = repository.builder.build_where(repository.info, operations["delete_many"], [*path, name, "delete_many"])
                await session.execute(
                    delete(repository.table).where(repository.info.attr(remote_key) == parent_key, condition)
                )

            items = operations.get("create") or []
            for index, item in enumerate(items if isinstance(items, list) else [items]):
                item_path = [*path, name, "create", str(index)]
                if isinstance(item, BaseModel):
                    item = item.model_dump(exclude_unset=True)
                if not isinstance(item, dict) or remote_key in item:
                    raise ValidationError(f"Nested create must be an object without `{remote_key}`", path=item_path)
                await repository._create_one(session, {**item, remote_key: parent_key}, item_path)


def select_count(subquery) -> Select:
    return sql_select(func.count()).select_from(subquery)


def _hashable(value: Any) -> Any:
    return tuple(value) if isinstance(value, list) else value


