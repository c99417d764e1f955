"""Account database models."""

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import Column, Index, Integer, String, text

db: SQLAlchemy = SQLAlchemy()


class DBAccount(db.Model):  # type: ignore
    """
    Account table.

    +---------------------+--------------+------+-----+---------+----------------+
    | Field               | Type         | Null | Key | Default | Extra          |
    +---------------------+--------------+------+-----+---------+----------------+
    | user_id             | int          | NO   | PRI | NULL    | auto_increment |
    | email               | varchar(255) | NO   | UNI | NULL    |                |
    | password_enc        | varchar(255) | NO   |     | NULL    |                |
    | password_storage    | varchar(16)  | NO   |     | argon2id|                |
    | first_name          | varchar(50)  | YES  |     | NULL    |                |
    | last_name           | varchar(50)  | YES  |     | NULL    |                |
    | phone               | varchar(32)  | YES  |     | NULL    |                |
    | company_name        | varchar(255) | YES  |     | NULL    |                |
    | joined_date         | int          | NO   |     | 0       |                |
    | joined_ip_num       | varchar(45)  | YES  |     | NULL    |                |
    | flag_email_verified | int          | NO   |     | 0       |                |
    | flag_deleted        | int          | NO   |     | 0       |                |
    +---------------------+--------------+------+-----+---------+----------------+
    """

    __tablename__ = 'accounts'

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    password_enc = Column(String(255), nullable=False)
    password_storage = Column(String(16), nullable=False,
                              server_default=text("'argon2id'"))
    first_name = Column(String(50))
    last_name = Column(String(50))
    phone = Column(String(32))
    company_name = Column(String(255))
    joined_date = Column(Integer, nullable=False, server_default=text("'0'"))
    joined_ip_num = Column(String(45))
    flag_email_verified = Column(Integer, nullable=False,
                                 server_default=text("'0'"))
    flag_deleted = Column(Integer, nullable=False, server_default=text("'0'"))


class DBOneTimeCode(db.Model):  # type: ignore
    """
    One-time codes, keyed by account e-mail and intent.

    Only a salted HMAC of each code is kept. Rows are never updated except to
    set ``consumed``, ``superseded`` or ``attempts``.
    """

    __tablename__ = 'one_time_codes'
    __table_args__ = (
        Index('ix_one_time_codes_email_intent', 'email', 'intent'),
    )

    otp_id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False)
    intent = Column(String(32), nullable=False)
    code_hash = Column(String(64), nullable=False)
    salt = Column(String(32), nullable=False)
    issued_at = Column(Integer, nullable=False)
    expires_at = Column(Integer, nullable=False)
    consumed = Column(Integer, nullable=False, server_default=text("'0'"))
    superseded = Column(Integer, nullable=False, server_default=text("'0'"))
    attempts = Column(Integer, nullable=False, server_default=text("'0'"))
