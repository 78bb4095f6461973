from fastapi import Request

from app.database.engine import Database


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_db(request: Request):
    db = get_database(request).session()
    try:
        yield db
    finally:
        db.close()
