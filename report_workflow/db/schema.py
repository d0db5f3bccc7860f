from __future__ import annotations

from report_workflow.db.postgres import _import_psycopg

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    DO $$ BEGIN
      CREATE TYPE report_period AS ENUM ('mensal', 'trimestral', 'semestral', 'anual');
    EXCEPTION WHEN duplicate_object THEN NULL; END $$
    """,
    """
    DO $$ BEGIN
      CREATE TYPE report_status AS ENUM ('rascunho', 'enviado', 'aprovado', 'rejeitado');
    EXCEPTION WHEN duplicate_object THEN NULL; END $$
    """,
    """
    DO $$ BEGIN
      CREATE TYPE attachment_type AS ENUM ('foto_projeto', 'comprovante');
    EXCEPTION WHEN duplicate_object THEN NULL; END $$
    """,
    """
    DO $$ BEGIN
      CREATE TYPE user_role AS ENUM ('beneficiary', 'admin');
    EXCEPTION WHEN duplicate_object THEN NULL; END $$
    """,
    """
    CREATE TABLE IF NOT EXISTS profiles (
      user_id UUID PRIMARY KEY,
      role user_role NOT NULL DEFAULT 'beneficiary'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS projects (
      id UUID PRIMARY KEY,
      nome TEXT NOT NULL,
      descricao TEXT,
      estado TEXT,
      criado_em TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS beneficiary_projects (
      beneficiary_id UUID NOT NULL,
      project_id UUID NOT NULL REFERENCES projects(id),
      atribuido_em TIMESTAMPTZ NOT NULL DEFAULT now(),
      PRIMARY KEY (beneficiary_id, project_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS reports (
      id UUID PRIMARY KEY,
      project_id UUID NOT NULL REFERENCES projects(id),
      beneficiary_id UUID NOT NULL,
      period report_period NOT NULL,
      descricao_progresso TEXT NOT NULL,
      postos_trabalho INTEGER NOT NULL DEFAULT 0 CHECK (postos_trabalho >= 0),
      status report_status NOT NULL DEFAULT 'rascunho',
      observacoes TEXT,
      criado_em TIMESTAMPTZ NOT NULL DEFAULT now(),
      atualizado_em TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS attachments (
      id UUID PRIMARY KEY,
      report_id UUID NOT NULL REFERENCES reports(id),
      uploaded_by UUID NOT NULL,
      url TEXT NOT NULL,
      type attachment_type NOT NULL,
      criado_em TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS admin_comments (
      id UUID PRIMARY KEY,
      report_id UUID NOT NULL REFERENCES reports(id),
      admin_id UUID NOT NULL,
      comentario TEXT NOT NULL,
      criado_em TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    "CREATE INDEX IF NOT EXISTS reports_beneficiary_idx ON reports (beneficiary_id, criado_em DESC)",
    "CREATE INDEX IF NOT EXISTS attachments_report_idx ON attachments (report_id)",
    "CREATE INDEX IF NOT EXISTS admin_comments_report_idx ON admin_comments (report_id, criado_em DESC)",
)


def apply_schema(dsn: str) -> int:
    """Create the workflow tables if missing; returns the number of statements executed."""
    if not dsn.strip():
        raise ValueError("POSTGRES_DSN must not be empty")
    psycopg = _import_psycopg()
    with psycopg.connect(dsn.strip()) as conn:
        with conn.cursor() as cur:
            for statement in SCHEMA_STATEMENTS:
                cur.execute(statement)
        conn.commit()
    return len(SCHEMA_STATEMENTS)
