from models.models import AuditLog


class AuditLogRepo:
    def __init__(self, db):
        self.db = db

    def add(self, entry: AuditLog) -> AuditLog:
        self.db.add(entry)
        return entry
