"""create recipe catalog tables

Revision ID: create_recipe_catalog_tables
Revises:
Create Date: 2026-03-01 00:01:00.000000

"""
from alembic import op
import sqlalchemy as sa
import sqlalchemy.dialects.postgresql as psql

# revision identifiers, used by Alembic.
revision = 'create_recipe_catalog_tables'
down_revision = None
branch_labels = None
depends_on = None

unit_type = sa.Enum('WEIGHT', 'VOLUME', 'COUNT', 'OTHER', name='unit_type')
string_list = sa.JSON().with_variant(psql.ARRAY(sa.String(length=100)), 'postgresql')


def timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    ]


def upgrade():
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text()),
        *timestamps(),
        sa.UniqueConstraint('name', name='uq_categories_name'),
    )

    op.create_table(
        'ingredient_categories',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text()),
        *timestamps(),
        sa.UniqueConstraint('name', name='uq_ingredient_categories_name'),
    )

    op.create_table(
        'units_of_measure',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('abbreviation', sa.String(length=20)),
        sa.Column('type', unit_type),
        *timestamps(),
        sa.UniqueConstraint('name', name='uq_units_of_measure_name'),
        sa.UniqueConstraint('abbreviation', name='uq_units_of_measure_abbreviation'),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String()),
        sa.Column('password', sa.String(), nullable=False),
        *timestamps(),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'ingredients',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('ingredient_category_id', sa.Integer(),
                  sa.ForeignKey('ingredient_categories.id', ondelete='SET NULL',
                                name='fk_ingredients_ingredient_category_id_ingredient_categories')),
        *timestamps(),
        sa.UniqueConstraint('name', name='uq_ingredients_name'),
    )
    op.create_index('ix_ingredients_ingredient_category_id', 'ingredients', ['ingredient_category_id'])

    op.create_table(
        'recipes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('instructions', sa.Text(), nullable=False),
        sa.Column('yield_quantity', sa.Numeric(12, 3)),
        sa.Column('yield_unit_id', sa.Integer(),
                  sa.ForeignKey('units_of_measure.id', ondelete='RESTRICT',
                                name='fk_recipes_yield_unit_id_units_of_measure')),
        sa.Column('prep_time_minutes', sa.Integer()),
        sa.Column('cook_time_minutes', sa.Integer()),
        sa.Column('tags', string_list, nullable=False),
        sa.Column('category_id', sa.Integer(),
                  sa.ForeignKey('categories.id', ondelete='SET NULL', name='fk_recipes_category_id_categories')),
        sa.Column('user_id', sa.Integer(),
                  sa.ForeignKey('users.id', ondelete='SET NULL', name='fk_recipes_user_id_users')),
        *timestamps(),
    )
    op.create_index('ix_recipes_name', 'recipes', ['name'])
    op.create_index('ix_recipes_category_id', 'recipes', ['category_id'])
    op.create_index('ix_recipes_user_id', 'recipes', ['user_id'])

    op.create_table(
        'unit_quantities',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('recipe_id', sa.Integer(),
                  sa.ForeignKey('recipes.id', ondelete='CASCADE', name='fk_unit_quantities_recipe_id_recipes'),
                  nullable=False),
        sa.Column('ingredient_id', sa.Integer(),
                  sa.ForeignKey('ingredients.id', ondelete='RESTRICT',
                                name='fk_unit_quantities_ingredient_id_ingredients')),
        sa.Column('sub_recipe_id', sa.Integer(),
                  sa.ForeignKey('recipes.id', ondelete='RESTRICT', name='fk_unit_quantities_sub_recipe_id_recipes')),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('unit_id', sa.Integer(),
                  sa.ForeignKey('units_of_measure.id', ondelete='RESTRICT',
                                name='fk_unit_quantities_unit_id_units_of_measure'),
                  nullable=False),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
        *timestamps(),
    )
    op.create_index('ix_unit_quantities_recipe_id', 'unit_quantities', ['recipe_id'])
    op.create_index('ix_unit_quantities_ingredient_id', 'unit_quantities', ['ingredient_id'])
    op.create_index('ix_unit_quantities_sub_recipe_id', 'unit_quantities', ['sub_recipe_id'])


def downgrade():
    op.drop_table('unit_quantities')
    op.drop_table('recipes')
    op.drop_table('ingredients')
    op.drop_table('users')
    op.drop_table('units_of_measure')
    op.drop_table('ingredient_categories')
    op.drop_table('categories')
    unit_type.drop(op.get_bind(), checkfirst=True)
