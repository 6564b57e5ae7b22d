import os
from passlib.context import CryptContext
import pymysql

print("Параметры подключения к DB:")
print(f"DB_HOST: {os.environ.get('DB_HOST')}")
print(f"DB_PORT: {os.environ.get('DB_PORT')}")
print(f"DB_USER: {os.environ.get('MYSQL_USER')}")
print(f"DB_PASSWORD: {'*' * len(os.environ.get('MYSQL_PASSWORD', ''))}")
print(f"DB_NAME: {os.environ.get('MYSQL_DATABASE')}")

DB_HOST = os.environ.get("DB_HOST", "db")
DB_PORT = int(os.environ.get("DB_PORT", 3306))
DB_USER = os.environ.get("MYSQL_USER", "myuser")
DB_PASSWORD = os.environ.get("MYSQL_PASSWORD", "mypassword")
DB_NAME = os.environ.get("MYSQL_DATABASE", "mydb")

ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "admin@tasktrove.ru")
ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD")

# SQLAlchemy Enum columns store the member name
ADMIN_ROLE = "ADMINISTRATOR"


def create_admin(conn, email, password_hash):
    with conn.cursor() as cursor:
        cursor.execute("SELECT id, role FROM accounts WHERE email=%s", (email,))
        row = cursor.fetchone()
        if row is None:
            cursor.execute(
                "INSERT INTO accounts (email, password_hash, role, email_verified, is_active, created_at) "
                "VALUES (%s, %s, %s, %s, %s, UTC_TIMESTAMP())",
                (email, password_hash, ADMIN_ROLE, True, True)
            )
            conn.commit()
            print("Administrator account created.")
        elif row["role"] != ADMIN_ROLE:
            cursor.execute("UPDATE accounts SET role=%s, is_active=1 WHERE id=%s", (ADMIN_ROLE, row["id"]))
            conn.commit()
            print(f"Account {row['id']} promoted to administrator.")
        else:
            print("Administrator account already exists.")


def main():
    if not ADMIN_PASSWORD:
        raise SystemExit("ADMIN_PASSWORD is not set")
    pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
    password_hash = pwd_context.hash(ADMIN_PASSWORD)

    conn = pymysql.connect(
        host=DB_HOST,
        port=DB_PORT,
        user=DB_USER,
        password=DB_PASSWORD,
        database=DB_NAME,
        charset='utf8mb4',
        cursorclass=pymysql.cursors.DictCursor
    )
    try:
        create_admin(conn, ADMIN_EMAIL, password_hash)
    finally:
        conn.close()


if __name__ == '__main__':
    main()
