#teamtrack/models/credential.py
from datetime import datetime
from sqlalchemy import Column, String, DateTime, func
from teamtrack.models.base import Base

class Credential(Base):
    """
    Credential — учётная запись для входа. external_id совпадает с ID профиля участника.
    """
    __tablename__ = "credentials"

    external_id: str = Column(String(64), primary_key=True, doc="Внешний ID учётной записи")
    email: str = Column(String(255), unique=True, nullable=False, index=True, doc="Email в нижнем регистре")
    display_name: str = Column(String(128), nullable=True, doc="Имя для профиля при первом входе")
    password_hash: str = Column(String(255), nullable=False, doc="Хэш пароля (никогда не хранить сырой пароль!)")
    created_at: datetime = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, doc="Дата создания")
    last_login_at: datetime = Column(DateTime(timezone=True), nullable=True, doc="Последний вход")

    def __repr__(self):
        return f"<Credential(external_id='{self.external_id}', email='{self.email}')>"
