from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from database import Base


# --- ADMINISTRATOR DRIVE LAYOUT ---


class CarpetaAdministrador(Base):
    """
    Root Drive folder of an administrator account.
    One row per administrator; the sync engine refuses to run without it.
    """
    __tablename__ = "carpeta_administrador"

    id = Column(Integer, primary_key=True, index=True)
    correo = Column(String, unique=True, index=True)  # administrator e-mail
    id_drive_carpeta = Column(String, index=True)  # Drive folder id
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class SubCarpetaAdministrador(Base):
    """
    Extension subfolder registry: maps a Drive folder to a service extension
    (e.g. entrenador, abogados) for one administrator.
    """
    __tablename__ = "sub_carpetas_administrador"

    id = Column(Integer, primary_key=True, index=True)
    administrador_email = Column(String, index=True)
    file_id_subcarpeta = Column(String, index=True)
    file_id_master = Column(String, nullable=True)  # root folder the subfolder hangs from
    nombre_subcarpeta = Column(String)
    tipo_extension = Column(String)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


# --- MIRROR TABLES ---


class DocumentoAdministrador(Base):
    """Mirror of a Drive file: extracted content, embedding and sync metadata."""
    __tablename__ = "documentos_administrador"
    __table_args__ = (
        UniqueConstraint("file_id", "administrador", name="uq_documento_file_admin"),
    )

    id = Column(Integer, primary_key=True, index=True)
    file_id = Column(String, index=True)
    name = Column(String)
    file_type = Column(String)
    file_size = Column(BigInteger, default=0)
    administrador = Column(String, index=True)
    servicio = Column(String, default="general")
    carpeta_actual = Column(String, nullable=True, index=True)  # parent folder id in Drive
    nombre_carpeta_actual = Column(String, nullable=True)
    nombre_limpio = Column(String, nullable=True)
    telegram_id = Column(String, nullable=True)
    content = Column(Text, nullable=True)
    # pgvector column in Supabase; stored as a JSON float array here
    embedding = Column(JSON, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)
    pendiente = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)


class GrupoDrive(Base):
    """Mirror of a Drive folder registered as a group."""
    __tablename__ = "grupos_drive"
    __table_args__ = (
        UniqueConstraint("folder_id", "administrador", name="uq_grupo_folder_admin"),
    )

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String, index=True)  # administrator user id
    folder_id = Column(String, index=True)
    parent_folder_id = Column(String, nullable=True, index=True)  # set when registered by an administrator, never by sync
    administrador = Column(String, index=True)
    extension = Column(String, default="general")
    group_name = Column(String)
    nombre_grupo_low = Column(String)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_synced_at = Column(DateTime(timezone=True), nullable=True)


class CarpetaUsuario(Base):
    """Mirror of a per-user Drive folder (folder named after the user's e-mail)."""
    __tablename__ = "carpetas_usuario"

    id = Column(Integer, primary_key=True, index=True)
    correo = Column(String, index=True)
    id_carpeta_drive = Column(String, unique=True, index=True)
    parent_folder_id = Column(String, nullable=True, index=True)  # set when registered by an administrator, never by sync
    administrador = Column(String, index=True)
    extension = Column(String, default="general")
    nombre_carpeta = Column(String)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_synced_at = Column(DateTime(timezone=True), nullable=True)


class GrupoCarpeta(Base):
    """
    Shared-access mirror: one Drive ACL grant (grantee + role) for one shared
    folder, owned by one administrator.
    """
    __tablename__ = "grupos_carpetas"
    __table_args__ = (
        UniqueConstraint("carpeta_id", "administrador", "usuario_lector", name="uq_grupo_carpeta_grant"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True)  # administrator user id
    role = Column(String)  # editor | lector
    carpeta_id = Column(String, index=True)
    administrador = Column(String, index=True)
    usuario_lector = Column(String, index=True)  # grantee e-mail
    created_at = Column(DateTime(timezone=True), server_default=func.now())


# --- SUPABASE ACCOUNT TABLES ---
# These map existing tables of the main application database (Supabase).


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)  # Supabase auth uid
    email = Column(String, unique=True, index=True)
    name = Column(String, nullable=True)
    cliente = Column(Boolean, default=False)
    estado_interaccion = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    registered_via = Column(String, nullable=True)
    used_storage_bytes = Column(BigInteger, default=0, nullable=False)
    admin = Column(Boolean, default=False)
    onboarding_status = Column(String, nullable=True)
    current_plan_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Plan(Base):
    __tablename__ = "plans"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=True)
    token_limit_usage = Column(Integer, nullable=True)


class UserTokensUsage(Base):
    __tablename__ = "user_tokens_usage"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, index=True)
    tokens_used = Column(Integer, default=0, nullable=False)
    total_tokens = Column(Integer, nullable=True)
    operation = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_updated_at = Column(DateTime(timezone=True), nullable=True)


class UserCredentials(Base):
    """Google OAuth tokens granted by a user when connecting Drive."""
    __tablename__ = "user_credentials"

    user_id = Column(String, primary_key=True)
    google_access_token = Column(Text, nullable=True)
    google_refresh_token = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Rutina(Base):
    """Weekly training/nutrition plan parsed from a trainer spreadsheet."""
    __tablename__ = "rutinas"

    id = Column(Integer, primary_key=True, index=True)
    user_email = Column(String, unique=True, index=True)
    plan_semanal = Column(JSON)
    administrador = Column(String, index=True)
    file_id = Column(String, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)
