"""In-memory stand-in for the parts of supabase-py the service layer uses."""
import copy
import re
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace


OR_CLAUSE = re.compile(r'(\w+)\.eq\.(?:("(?:[^"\\]|\\.)*")|([^,"]*))')


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


def _comparable(value):
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return value


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self.orders = []
        self.limit_n = None
        self.count = None

    # verbs
    def select(self, columns="*", count=None):
        self.op = "select"
        self.count = count
        return self

    def insert(self, rows):
        self.op = "insert"
        self.payload = rows if isinstance(rows, list) else [rows]
        return self

    def update(self, values):
        self.op = "update"
        self.payload = values
        return self

    def delete(self):
        self.op = "delete"
        return self

    # filters
    def _add(self, predicate):
        self.filters.append(predicate)
        return self

    def eq(self, column, value):
        return self._add(lambda row: row.get(column) == value)

    def neq(self, column, value):
        return self._add(lambda row: row.get(column) != value)

    def gt(self, column, value):
        return self._add(lambda row: row.get(column) is not None and _comparable(row[column]) > _comparable(value))

    def gte(self, column, value):
        return self._add(lambda row: row.get(column) is not None and _comparable(row[column]) >= _comparable(value))

    def lt(self, column, value):
        return self._add(lambda row: row.get(column) is not None and _comparable(row[column]) < _comparable(value))

    def lte(self, column, value):
        return self._add(lambda row: row.get(column) is not None and _comparable(row[column]) <= _comparable(value))

    def in_(self, column, values):
        values = list(values)
        return self._add(lambda row: row.get(column) in values)

    def ilike(self, column, pattern):
        regex = re.compile("^" + ".*".join(re.escape(p) for p in pattern.split("%")) + "$", re.IGNORECASE)
        return self._add(lambda row: row.get(column) is not None and bool(regex.match(str(row[column]))))

    def is_(self, column, value):
        expected = None if value == "null" else value
        return self._add(lambda row: row.get(column) is expected)

    def or_(self, expression):
        """Parse col.eq.value clauses; quoted values may hold commas, escaped quotes and backslashes"""
        clauses = []
        for column, quoted, bare in OR_CLAUSE.findall(expression):
            value = re.sub(r"\\(.)", r"\1", quoted[1:-1]) if quoted else bare
            clauses.append((column, value))
        rebuilt = ",".join(f"{c}.eq.{q or b}" for c, q, b in OR_CLAUSE.findall(expression))
        if rebuilt != expression:
            raise Exception(f"failed to parse logic tree ({expression})")
        return self._add(lambda row: any(str(row.get(c)) == v for c, v in clauses))

    def order(self, column, desc=False, **kwargs):
        self.orders.append((column, desc))
        return self

    def limit(self, n):
        self.limit_n = n
        return self

    # execution
    def _matches(self, row):
        return all(predicate(row) for predicate in self.filters)

    def execute(self):
        if (self.table, self.op) in self.db.fail_on:
            raise Exception(f"simulated {self.op} failure on {self.table}")
        self.db.calls.append((self.table, self.op))
        rows = self.db.tables.setdefault(self.table, [])
        if (self.table, self.op) in self.db.empty_on:
            return FakeResponse([])

        if self.op == "insert":
            created = []
            for row in self.payload:
                row = copy.deepcopy(row)
                row.setdefault("id", str(uuid.uuid4()))
                row.setdefault("created_at", self.db.now().isoformat())
                rows.append(row)
                created.append(copy.deepcopy(row))
            return FakeResponse(created)

        if self.op == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self.payload))
                    updated.append(copy.deepcopy(row))
            return FakeResponse(updated)

        if self.op == "delete":
            removed = [row for row in rows if self._matches(row)]
            self.db.tables[self.table] = [row for row in rows if not self._matches(row)]
            return FakeResponse(copy.deepcopy(removed))

        result = [copy.deepcopy(row) for row in rows if self._matches(row)]
        for column, desc in reversed(self.orders):
            result.sort(key=lambda r: (r.get(column) is None, _comparable(r.get(column)) if r.get(column) is not None else 0),
                        reverse=desc)
        total = len(result)
        if self.limit_n is not None:
            result = result[:self.limit_n]
        return FakeResponse(result, count=total if self.count else None)


class FakeRpc:
    def __init__(self, db, name, params):
        self.db = db
        self.name = name
        self.params = params

    def execute(self):
        handler = self.db.rpcs.get(self.name)
        if handler is None:
            raise Exception(f"function {self.name} does not exist")
        return FakeResponse(handler(self.db, **self.params))


class FakeBucket:
    def __init__(self, storage, name):
        self.storage = storage
        self.name = name

    def upload(self, path, data):
        if data == b"broken":
            raise Exception("upload rejected")
        self.storage.objects[(self.name, path)] = data

    def get_public_url(self, path):
        return f"https://storage.test/{self.name}/{path}"

    def remove(self, paths):
        for path in paths:
            self.storage.objects.pop((self.name, path), None)


class FakeStorage:
    def __init__(self):
        self.objects = {}

    def from_(self, bucket):
        return FakeBucket(self, bucket)


class FakeAdminAuth:
    def __init__(self, auth):
        self.auth = auth
        self.deleted = []
        self.signed_out = []

    def delete_user(self, user_id):
        self.deleted.append(user_id)

    def sign_out(self, jwt, scope="global"):
        self.signed_out.append(jwt)


class FakeAuth:
    def __init__(self):
        self.users = {}
        self.reset_requests = []
        self.admin = FakeAdminAuth(self)

    def sign_up(self, credentials):
        email = credentials["email"]
        if email in self.users:
            raise Exception("User already registered")
        user = SimpleNamespace(
            id=str(uuid.uuid4()),
            email=email,
            user_metadata=credentials.get("options", {}).get("data", {}),
        )
        self.users[email] = (user, credentials["password"])
        return SimpleNamespace(user=user, session=None)

    def sign_in_with_password(self, credentials):
        entry = self.users.get(credentials["email"])
        if entry is None or entry[1] != credentials["password"]:
            raise Exception("Invalid login credentials")
        user = entry[0]
        session = SimpleNamespace(access_token=f"token-{user.id}", refresh_token="refresh")
        return SimpleNamespace(user=user, session=session)

    def reset_password_for_email(self, email, options=None):
        self.reset_requests.append((email, options))

    def get_user(self, jwt):
        for user, _ in self.users.values():
            if jwt == f"token-{user.id}":
                return SimpleNamespace(user=user)
        return None


class FakeSupabase:
    """Tables are plain lists of dicts; fail_on holds (table, op) pairs that raise, empty_on pairs that match no rows"""

    def __init__(self, now=None):
        self.tables = {}
        self.fail_on = set()
        self.empty_on = set()
        self.calls = []
        self.rpcs = {}
        self.auth = FakeAuth()
        self.storage = FakeStorage()
        self._now = now

    def now(self):
        return self._now or datetime.now(timezone.utc)

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params):
        return FakeRpc(self, name, params)

    def seed(self, table, *rows):
        stored = []
        for row in rows:
            row = dict(row)
            row.setdefault("id", str(uuid.uuid4()))
            row.setdefault("created_at", self.now().isoformat())
            self.tables.setdefault(table, []).append(row)
            stored.append(row)
        return stored[0] if len(stored) == 1 else stored

    def row(self, table, row_id):
        for row in self.tables.get(table, []):
            if row["id"] == row_id:
                return row
        return None


def increment_issue_views_rpc(db, issue_id):
    row = db.row("issues", issue_id)
    row["views_count"] = (row.get("views_count") or 0) + 1
    return None
