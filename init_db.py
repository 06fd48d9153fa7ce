from database import engine, Base
import models  # noqa: F401  registers the tables on Base.metadata


def init_db():
    Base.metadata.create_all(bind=engine)
    print("Database initialized.")


if __name__ == "__main__":
    init_db()
