"""Create academic structure, exam mark and grade card tables.

Revision ID: create_bulk_import_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'create_bulk_import_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


classtype = sa.Enum('THEORY', 'PRACTICAL', name='classtype')


def id_column() -> sa.Column:
    return sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False)


def timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
    ]


def college_column() -> sa.Column:
    return sa.Column(
        'college_id', sa.BigInteger(),
        sa.ForeignKey('colleges.id', ondelete='CASCADE'),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        'colleges',
        id_column(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        *timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
    )

    op.create_table(
        'semesters',
        id_column(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('numerical', sa.Integer(), nullable=False),
        *timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('numerical'),
    )

    op.create_table(
        'batches',
        id_column(),
        college_column(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('semester_id', sa.BigInteger(), sa.ForeignKey('semesters.id', ondelete='RESTRICT'), nullable=False),
        *timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_batches_college_id', 'batches', ['college_id'])
    op.create_index('ix_batches_semester_id', 'batches', ['semester_id'])

    op.create_table(
        'subjects',
        id_column(),
        college_column(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        *timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_subjects_college_id', 'subjects', ['college_id'])

    op.create_table(
        'batch_subjects',
        id_column(),
        sa.Column('batch_id', sa.BigInteger(), sa.ForeignKey('batches.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subject_id', sa.BigInteger(), sa.ForeignKey('subjects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('credit_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('class_type', classtype, nullable=False, server_default='THEORY'),
        *timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_batch_subjects_batch_id', 'batch_subjects', ['batch_id'])
    op.create_index('ix_batch_subjects_subject_id', 'batch_subjects', ['subject_id'])

    op.create_table(
        'students',
        id_column(),
        college_column(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('enrollment_no', sa.String(50), nullable=False),
        *timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_students_college_id', 'students', ['college_id'])
    op.create_index('ix_students_enrollment_no', 'students', ['enrollment_no'], unique=True)

    op.create_table(
        'student_batches',
        id_column(),
        sa.Column('student_id', sa.BigInteger(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('batch_id', sa.BigInteger(), sa.ForeignKey('batches.id', ondelete='CASCADE'), nullable=False),
        *timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('student_id', 'batch_id', name='uq_student_batch'),
    )
    op.create_index('ix_student_batches_student_id', 'student_batches', ['student_id'])
    op.create_index('ix_student_batches_batch_id', 'student_batches', ['batch_id'])

    op.create_table(
        'exam_types',
        id_column(),
        college_column(),
        sa.Column('exam_name', sa.String(255), nullable=False),
        sa.Column('total_marks', sa.DECIMAL(10, 2), nullable=False),
        sa.Column('passing_marks', sa.DECIMAL(10, 2), nullable=False),
        *timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_exam_types_college_id', 'exam_types', ['college_id'])

    op.create_table(
        'exam_marks',
        id_column(),
        sa.Column('exam_type_id', sa.BigInteger(), sa.ForeignKey('exam_types.id', ondelete='CASCADE'), nullable=False),
        sa.Column('student_id', sa.BigInteger(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('batch_subject_id', sa.BigInteger(), sa.ForeignKey('batch_subjects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('achieved_marks', sa.DECIMAL(10, 2), nullable=False),
        sa.Column('was_absent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('debarred', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('malpractice', sa.Boolean(), nullable=False, server_default=sa.false()),
        *timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('exam_type_id', 'student_id', 'batch_subject_id', name='uq_exam_mark_student_subject'),
    )
    op.create_index('ix_exam_marks_exam_type_id', 'exam_marks', ['exam_type_id'])
    op.create_index('ix_exam_marks_student_id', 'exam_marks', ['student_id'])
    op.create_index('ix_exam_marks_batch_subject_id', 'exam_marks', ['batch_subject_id'])

    op.create_table(
        'student_grade_cards',
        id_column(),
        sa.Column('student_id', sa.BigInteger(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('batch_id', sa.BigInteger(), sa.ForeignKey('batches.id', ondelete='CASCADE'), nullable=False),
        sa.Column('semester_id', sa.BigInteger(), sa.ForeignKey('semesters.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('card_no', sa.String(20), nullable=False),
        sa.Column('total_graded_credit', sa.Integer(), nullable=True),
        sa.Column('total_quality_point', sa.Integer(), nullable=True),
        sa.Column('gpa', sa.DECIMAL(4, 2), nullable=True),
        sa.Column('cgpa', sa.DECIMAL(4, 2), nullable=True),
        *timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
        # Enforces card number uniqueness across concurrent imports
        sa.UniqueConstraint('batch_id', 'semester_id', 'card_no', name='uq_grade_card_number'),
        sa.UniqueConstraint('student_id', 'batch_id', 'semester_id', name='uq_grade_card_student'),
    )
    op.create_index('ix_student_grade_cards_student_id', 'student_grade_cards', ['student_id'])
    op.create_index('ix_student_grade_cards_batch_id', 'student_grade_cards', ['batch_id'])
    op.create_index('ix_student_grade_cards_semester_id', 'student_grade_cards', ['semester_id'])

    op.create_table(
        'subject_grade_details',
        id_column(),
        sa.Column(
            'student_grade_card_id', sa.BigInteger(),
            sa.ForeignKey('student_grade_cards.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('batch_subject_id', sa.BigInteger(), sa.ForeignKey('batch_subjects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('internal_marks', sa.DECIMAL(5, 2), nullable=True),
        sa.Column('external_marks', sa.DECIMAL(5, 2), nullable=True),
        sa.Column('credit', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('grade', sa.String(2), nullable=True),
        sa.Column('grade_point', sa.Integer(), nullable=True),
        sa.Column('quality_point', sa.Integer(), nullable=True),
        *timestamp_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('student_grade_card_id', 'batch_subject_id', name='uq_subject_grade_detail'),
    )
    op.create_index('ix_subject_grade_details_student_grade_card_id', 'subject_grade_details', ['student_grade_card_id'])
    op.create_index('ix_subject_grade_details_batch_subject_id', 'subject_grade_details', ['batch_subject_id'])


def downgrade() -> None:
    op.drop_table('subject_grade_details')
    op.drop_table('student_grade_cards')
    op.drop_table('exam_marks')
    op.drop_table('exam_types')
    op.drop_table('student_batches')
    op.drop_table('students')
    op.drop_table('batch_subjects')
    op.drop_table('subjects')
    op.drop_table('batches')
    op.drop_table('semesters')
    op.drop_table('colleges')
    classtype.drop(op.get_bind(), checkfirst=True)
