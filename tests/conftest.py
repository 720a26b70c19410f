"""
Shared fixtures: in-memory database, fake Redis and an in-process client.
"""
import os

# must be set before anything imports storefront settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["METRICS_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["OPT_LOCK_BASE_DELAY_MS"] = "1"
os.environ["OPT_LOCK_JITTER_MS"] = "1"

import fnmatch  # noqa: E402
import time  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from storefront.api import health  # noqa: E402
from storefront.db.database import Base, SessionLocal, engine  # noqa: E402
from storefront.main import app  # noqa: E402
from storefront.middleware import idempotency, rate_limiter  # noqa: E402
from storefront.models import Address, Category, Coupon, Product, Role, User  # noqa: E402

PASSWORD = "Str0ngPass!"


# ─── Fake Redis ────────────────────────────────────────────────────────────────
class FakePipeline:
    def __init__(self, redis: "FakeRedis"):
        self._redis = redis
        self._ops = []

    def zremrangebyscore(self, key, low, high):
        self._ops.append(("zremrangebyscore", key, low, high))
        return self

    def zcard(self, key):
        self._ops.append(("zcard", key))
        return self

    def zadd(self, key, mapping):
        self._ops.append(("zadd", key, mapping))
        return self

    def expire(self, key, seconds):
        self._ops.append(("expire", key, seconds))
        return self

    async def execute(self):
        results = []
        for op, key, *args in self._ops:
            zset = self._redis.zsets.setdefault(key, {})
            if op == "zremrangebyscore":
                low, high = args
                low = float("-inf") if low == "-inf" else float(low)
                doomed = [m for m, s in zset.items() if low <= s <= float(high)]
                for member in doomed:
                    del zset[member]
                results.append(len(doomed))
            elif op == "zcard":
                results.append(len(zset))
            elif op == "zadd":
                zset.update(args[0])
                results.append(len(args[0]))
            else:
                results.append(True)
        self._ops = []
        return results


class FakeRedis:
    """The subset of redis.asyncio.Redis the middleware and health check use."""

    def __init__(self):
        self.values: dict[str, str] = {}
        self.expiry: dict[str, float] = {}
        self.zsets: dict[str, dict[str, float]] = {}

    def pipeline(self):
        return FakePipeline(self)

    async def get(self, key):
        if key in self.expiry and self.expiry[key] < time.time():
            self.values.pop(key, None)
        return self.values.get(key)

    async def setex(self, key, seconds, value):
        self.values[key] = str(value)
        self.expiry[key] = time.time() + seconds
        return True

    async def ping(self):
        return True

    def keys_matching(self, pattern: str) -> list[str]:
        return [k for k in self.values if fnmatch.fnmatch(k, pattern)]


# ─── Fixtures ──────────────────────────────────────────────────────────────────
@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()
    for module in (rate_limiter, idempotency, health):
        monkeypatch.setattr(module, "get_redis", lambda: fake)
    return fake


@pytest_asyncio.fixture(autouse=True)
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # drop the pooled connection so the next test's event loop opens its own
    await engine.dispose()


@pytest_asyncio.fixture
async def db():
    async with SessionLocal() as session:
        yield session


@pytest_asyncio.fixture
async def client(fake_redis):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ─── Helpers ───────────────────────────────────────────────────────────────────
async def register(client: httpx.AsyncClient, email: str, **extra) -> dict:
    payload = {
        "email": email,
        "password": PASSWORD,
        "firstName": extra.pop("first_name", "Test"),
        "lastName": extra.pop("last_name", "User"),
        **extra,
    }
    r = await client.post("/auth/register", json=payload)
    assert r.status_code == 201, r.text
    # callers authenticate explicitly with bearer headers
    client.cookies.clear()
    return r.json()["data"]


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def set_role(user_id: str, role: Role) -> None:
    async with SessionLocal() as session:
        user = await session.get(User, user_id)
        user.role = role
        await session.commit()


@pytest_asyncio.fixture
async def customer(client):
    data = await register(client, "shopper@example.com", first_name="Sam", last_name="Shopper")
    return {"id": data["user"]["id"], "headers": bearer(data["accessToken"])}


@pytest_asyncio.fixture
async def admin(client):
    data = await register(client, "admin@example.com", first_name="Ada", last_name="Admin")
    await set_role(data["user"]["id"], Role.ADMIN)
    return {"id": data["user"]["id"], "headers": bearer(data["accessToken"])}


@pytest_asyncio.fixture
async def manager(client):
    data = await register(client, "manager@example.com", first_name="Max", last_name="Manager")
    await set_role(data["user"]["id"], Role.MANAGER)
    return {"id": data["user"]["id"], "headers": bearer(data["accessToken"])}


@pytest_asyncio.fixture
async def category(db):
    cat = Category(name="Audio", slug="audio")
    db.add(cat)
    await db.commit()
    return cat


async def make_product(
    db, category: Category, name: str, price: float, stock: int, **extra
) -> Product:
    product = Product(
        name=name,
        slug=name.lower().replace(" ", "-"),
        price=price,
        stock=stock,
        category_id=category.id,
        **extra,
    )
    db.add(product)
    await db.commit()
    return product


async def make_address(db, user_id: str, **extra) -> Address:
    address = Address(
        user_id=user_id,
        street=extra.get("street", "1 Main St"),
        city="Springfield",
        state="IL",
        postal_code="62701",
        country="US",
        is_default=extra.get("is_default", True),
    )
    db.add(address)
    await db.commit()
    return address


async def make_coupon(db, code: str, discount_type, value: float, **extra) -> Coupon:
    coupon = Coupon(code=code, discount_type=discount_type, discount_value=value, **extra)
    db.add(coupon)
    await db.commit()
    return coupon
