import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from services.audit_service.db.models import (
    Audit,
    AuditMode,
    Base,
    CheckDefinition,
    CollectionStatus,
    Page,
    PageArtifact,
)

HTML = (
    '<html lang="en"><head><title>Acme Shoes</title>'
    '<meta name="description" content="Hand-made running shoes.">'
    '<meta name="viewport" content="width=device-width, initial-scale=1"></head>'
    '<body><header><a href="/" class="logo"><img src="/logo.png" alt="Acme logo"></a>'
    '<nav><ul><li><a href="/shop">Shop</a></li><li><a href="/about">About</a></li>'
    '<li><a href="/contact">Contact</a></li></ul></nav></header>'
    '<h1>Running shoes</h1><p>Built for distance.</p></body></html>'
)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_audit(db):
    def _make(url="https://acme.test/", mode=AuditMode.SINGLE_PAGE, **kwargs):
        audit = Audit(url=url, mode=mode.value, **kwargs)
        db.add(audit)
        db.commit()
        return audit

    return _make


@pytest.fixture
def make_page(db):
    def _make(audit, url=None, collected=True, html=HTML, **artifact_fields):
        page = Page(
            audit_id=audit.id,
            url=url or audit.url,
            is_priority=True,
            data_collection_status=(
                CollectionStatus.COMPLETE.value if collected else CollectionStatus.PENDING.value
            ),
        )
        if collected:
            fields = {
                "html_content": html,
                "page_content": "Running shoes Built for distance.",
                "headings": {"h1": ["Running shoes"]},
                "meta_title": "Acme Shoes",
                "meta_description": "Hand-made running shoes.",
            }
            fields.update(artifact_fields)
            page.artifact = PageArtifact(**fields)
        db.add(page)
        db.commit()
        return page

    return _make


@pytest.fixture
def make_check(db):
    counter = {"ordering": 0}

    def _make(key, instructions=None, data_sources=None, active=True, category="general", **kwargs):
        counter["ordering"] += 1
        check = CheckDefinition(
            key=key,
            name=kwargs.pop("name", key.replace("_", " ").title()),
            category=category,
            active=active,
            instructions=instructions,
            data_sources=data_sources if data_sources is not None else [],
            ordering=kwargs.pop("ordering", counter["ordering"]),
            **kwargs,
        )
        db.add(check)
        db.commit()
        return check

    return _make
