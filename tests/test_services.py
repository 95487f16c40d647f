"""
Direct service-layer tests: business rules exercised with a database
session and no HTTP in between.
"""
import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from blogcms.exceptions import ValidationError
from blogcms.models import Article, Comment, Tag, UserRole
from blogcms.schemas import (
    ArticleCreate,
    ArticleUpdate,
    CommentCreate,
    TagCreate,
    UserCreate,
    UserUpdate,
)
from blogcms.services import (
    article_service,
    comment_service,
    role_service,
    tag_service,
    user_service,
)
from blogcms.services.slugs import slugify


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _create_user(db: AsyncSession, username: str = "svcuser") -> dict:
    return await user_service.create_user(
        db,
        UserCreate(
            username=username,
            email=f"{username}@mail.com",
            password="secret1",
            full_name="Service User",
        ),
    )


async def _create_article(db: AsyncSession, author_id: int, **fields) -> dict:
    data = ArticleCreate(**{"title": "Service Article", "content": "Body", "is_published": True, **fields})
    return await article_service.create_article(db, data, author_id=author_id)


# ---------------------------------------------------------------------------
# slugs
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "text, expected",
    [
        ("Hello World!", "hello-world"),
        ("  Spaces  Everywhere  ", "spaces-everywhere"),
        ("UPPER-case---dashes", "upper-case-dashes"),
        ("a & b @ c", "a-b-c"),
        ("Café & Crème brûlée", "cafe-creme-brulee"),
        ("Привет мир", "privet-mir"),
        ("It's done", "its-done"),
        ("!!!", ""),
    ],
)
def test_slugify(text, expected):
    assert slugify(text) == expected


def test_slugify_is_deterministic():
    assert slugify("Same Title, Twice") == slugify("Same Title, Twice")


@pytest.mark.asyncio
async def test_punctuation_only_title_falls_back(db_session: AsyncSession):
    user = await _create_user(db_session)
    article = await _create_article(db_session, user["id"], title="???")
    assert article["slug"] == "article"


@pytest.mark.asyncio
async def test_transliterated_slugs_fit_their_columns(db_session: AsyncSession):
    user = await _create_user(db_session)
    article_limit = Article.__table__.c.slug.type.length
    tag_limit = Tag.__table__.c.slug.type.length

    first = await _create_article(db_session, user["id"], title="щ" * 200)
    second = await _create_article(db_session, user["id"], title="щ" * 200)
    assert len(first["slug"]) <= article_limit
    assert second["slug"] == first["slug"] + "-2"
    assert len(second["slug"]) <= article_limit

    tag = await tag_service.create_tag(db_session, TagCreate(name="щ" * 50))
    assert len(tag["slug"]) <= tag_limit
    assert set(tag["slug"]) <= set("shc")


@pytest.mark.asyncio
async def test_cut_slug_does_not_end_with_hyphen(db_session: AsyncSession):
    user = await _create_user(db_session)
    # "abc-shch-shch-..." is cut right after a hyphen.
    article = await _create_article(db_session, user["id"], title="abc" + " щ" * 98)
    assert article["slug"] == ("abc" + "-shch" * 98)[:243]


# ---------------------------------------------------------------------------
# user_service
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_user_defaults(db_session: AsyncSession):
    user = await user_service.create_user(
        db_session,
        UserCreate(username="Bob_1", email="Bob@Mail.com", password="secret1", full_name="Bob"),
    )
    assert user["email"] == "bob@mail.com"
    assert user["is_active"] is True
    assert user["roles"] == ["User"]


@pytest.mark.asyncio
async def test_authenticate(db_session: AsyncSession):
    user = await _create_user(db_session)
    assert await user_service.authenticate(db_session, "svcuser", "secret1")
    assert not await user_service.authenticate(db_session, "svcuser", "wrong")
    assert not await user_service.authenticate(db_session, "ghost", "secret1")

    await user_service.update_user(db_session, user["id"], UserUpdate(is_active=False))
    assert not await user_service.authenticate(db_session, "svcuser", "secret1")


@pytest.mark.asyncio
async def test_update_user_email_uniqueness_excludes_self(db_session: AsyncSession):
    user = await _create_user(db_session, "first")
    await _create_user(db_session, "second")

    same = await user_service.update_user(db_session, user["id"], UserUpdate(email="first@mail.com"))
    assert same["email"] == "first@mail.com"

    with pytest.raises(ValidationError):
        await user_service.update_user(db_session, user["id"], UserUpdate(email="second@mail.com"))


@pytest.mark.asyncio
async def test_update_missing_user_returns_none(db_session: AsyncSession):
    assert await user_service.update_user(db_session, 99999, UserUpdate(full_name="x")) is None


@pytest.mark.asyncio
async def test_role_assignment(db_session: AsyncSession):
    user = await _create_user(db_session)
    admin_role = await role_service.get_role_by_name(db_session, "Admin")

    assert await user_service.assign_role(db_session, user["id"], admin_role.id) is True
    assert await user_service.assign_role(db_session, user["id"], admin_role.id) is False
    assert await user_service.get_user_roles(db_session, user["id"]) == ["Admin", "User"]

    assert await user_service.revoke_role(db_session, user["id"], admin_role.id) is True
    assert await user_service.revoke_role(db_session, user["id"], admin_role.id) is False
    assert await user_service.get_user_roles(db_session, user["id"]) == ["User"]


@pytest.mark.asyncio
async def test_delete_user_cascades(db_session: AsyncSession):
    author = await _create_user(db_session, "author")
    reader = await _create_user(db_session, "reader")
    own = await _create_article(db_session, author["id"], title="Own")
    other = await _create_article(db_session, reader["id"], title="Other")
    await comment_service.create_comment(
        db_session, CommentCreate(content="on own", article_id=own["id"]), user_id=reader["id"]
    )
    await comment_service.create_comment(
        db_session, CommentCreate(content="by author", article_id=other["id"]), user_id=author["id"]
    )

    assert await user_service.delete_user(db_session, author["id"]) is True

    assert await user_service.get_user(db_session, author["id"]) is None
    assert await article_service.get_article(db_session, own["id"]) is None
    remaining = (await db_session.execute(select(func.count()).select_from(Comment))).scalar_one()
    assert remaining == 0
    links = (await db_session.execute(
        select(func.count()).select_from(UserRole).where(UserRole.user_id == author["id"])
    )).scalar_one()
    assert links == 0
    assert await article_service.get_article(db_session, other["id"]) is not None


@pytest.mark.asyncio
async def test_delete_missing_user(db_session: AsyncSession):
    assert await user_service.delete_user(db_session, 99999) is False


# ---------------------------------------------------------------------------
# article_service
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_articles_empty(db_session: AsyncSession):
    result = await article_service.get_articles(db_session)
    assert result.total == 0
    assert result.items == []
    assert result.pages == 0


@pytest.mark.asyncio
async def test_create_article_server_controlled_fields(db_session: AsyncSession):
    user = await _create_user(db_session)
    article = await _create_article(db_session, user["id"], is_published=False)
    assert article["view_count"] == 0
    assert article["published_at"] is None
    assert article["author_id"] == user["id"]
    assert article["author_name"] == "svcuser"
    assert article["comments"] == []


@pytest.mark.asyncio
async def test_increment_view_count(db_session: AsyncSession):
    user = await _create_user(db_session)
    article = await _create_article(db_session, user["id"])

    for expected in range(1, 6):
        assert await article_service.increment_view_count(db_session, article["id"]) == expected

    detail = await article_service.get_article(db_session, article["id"])
    assert detail["view_count"] == 5


@pytest.mark.asyncio
async def test_increment_view_count_missing_article(db_session: AsyncSession):
    assert await article_service.increment_view_count(db_session, 99999) is None


@pytest.mark.asyncio
async def test_reset_view_count(db_session: AsyncSession):
    user = await _create_user(db_session)
    article = await _create_article(db_session, user["id"])
    await article_service.increment_view_count(db_session, article["id"])

    assert await article_service.reset_view_count(db_session, article["id"]) is True
    assert (await article_service.get_article(db_session, article["id"]))["view_count"] == 0
    assert await article_service.reset_view_count(db_session, 99999) is False


@pytest.mark.asyncio
async def test_published_at_stamped_once(db_session: AsyncSession):
    user = await _create_user(db_session)
    article = await _create_article(db_session, user["id"], is_published=False)

    published = await article_service.update_article(db_session, article["id"], ArticleUpdate(is_published=True))
    stamp = published["published_at"]
    assert stamp is not None

    unpublished = await article_service.update_article(
        db_session, article["id"], ArticleUpdate(is_published=False)
    )
    assert unpublished["is_published"] is False
    assert unpublished["published_at"] == stamp


@pytest.mark.asyncio
async def test_update_ignores_empty_fields(db_session: AsyncSession):
    user = await _create_user(db_session)
    article = await _create_article(db_session, user["id"], excerpt="keep me")
    updated = await article_service.update_article(
        db_session, article["id"], ArticleUpdate(title="", excerpt=None, content="New body")
    )
    assert updated["title"] == "Service Article"
    assert updated["slug"] == article["slug"]
    assert updated["excerpt"] == "keep me"
    assert updated["content"] == "New body"


@pytest.mark.asyncio
async def test_update_with_unknown_tag_rejected(db_session: AsyncSession):
    user = await _create_user(db_session)
    article = await _create_article(db_session, user["id"])
    with pytest.raises(ValidationError):
        await article_service.update_article(db_session, article["id"], ArticleUpdate(tag_ids=[424242]))


@pytest.mark.asyncio
async def test_update_missing_article(db_session: AsyncSession):
    assert await article_service.update_article(db_session, 99999, ArticleUpdate(title="x")) is None


@pytest.mark.asyncio
async def test_drafts_and_author_lists(db_session: AsyncSession):
    user = await _create_user(db_session)
    await _create_article(db_session, user["id"], title="Live")
    await _create_article(db_session, user["id"], title="Hidden", is_published=False)

    drafts = await article_service.get_drafts(db_session)
    assert [a["title"] for a in drafts.items] == ["Hidden"]
    by_author = await article_service.get_articles_by_author(db_session, user["id"])
    assert [a["title"] for a in by_author.items] == ["Live"]


@pytest.mark.asyncio
async def test_delete_article_keeps_tags(db_session: AsyncSession):
    user = await _create_user(db_session)
    tag = await tag_service.create_tag(db_session, TagCreate(name="stay"))
    article = await _create_article(db_session, user["id"], tag_ids=[tag["id"]])

    assert await article_service.delete_article(db_session, article["id"]) is True
    assert await article_service.delete_article(db_session, article["id"]) is False
    assert (await tag_service.get_tag(db_session, tag["id"]))["article_count"] == 0
    remaining = (await db_session.execute(select(func.count()).select_from(Article))).scalar_one()
    assert remaining == 0


# ---------------------------------------------------------------------------
# tag_service
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_tag_slug_collision_and_blank_name(db_session: AsyncSession):
    first = await tag_service.create_tag(db_session, TagCreate(name="C++"))
    second = await tag_service.create_tag(db_session, TagCreate(name="C"))
    assert first["slug"] == "c"
    assert second["slug"] == "c-2"

    with pytest.raises(ValidationError):
        await tag_service.create_tag(db_session, TagCreate(name="   "))


# ---------------------------------------------------------------------------
# comment_service
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_new_comment_is_unapproved(db_session: AsyncSession):
    user = await _create_user(db_session)
    article = await _create_article(db_session, user["id"])
    comment = await comment_service.create_comment(
        db_session, CommentCreate(content="hello", article_id=article["id"]), user_id=user["id"]
    )
    assert comment["is_approved"] is False
    assert await comment_service.get_comments_by_article(db_session, article["id"]) == []

    approved = await comment_service.approve_comment(db_session, comment["id"])
    assert approved["is_approved"] is True
    listed = await comment_service.get_comments_by_article(db_session, article["id"])
    assert [c["id"] for c in listed] == [comment["id"]]


@pytest.mark.asyncio
async def test_comment_for_missing_user(db_session: AsyncSession):
    user = await _create_user(db_session)
    article = await _create_article(db_session, user["id"])
    with pytest.raises(ValidationError):
        await comment_service.create_comment(
            db_session, CommentCreate(content="ghost", article_id=article["id"]), user_id=99999
        )


@pytest.mark.asyncio
async def test_comment_tree_single_level_ordering(db_session: AsyncSession):
    user = await _create_user(db_session)
    article = await _create_article(db_session, user["id"])

    async def add(content, parent_id=None):
        c = await comment_service.create_comment(
            db_session,
            CommentCreate(content=content, article_id=article["id"], parent_id=parent_id),
            user_id=user["id"],
        )
        return c["id"]

    root = await add("root")
    await add("first reply", root)
    await add("second reply", root)

    tree = await comment_service.get_comment_tree(db_session, article["id"], include_unapproved=True)
    assert len(tree) == 1
    assert [r["content"] for r in tree[0]["replies"]] == ["first reply", "second reply"]
    assert await comment_service.get_comment_tree(db_session, article["id"]) == []


@pytest.mark.asyncio
async def test_delete_comment_removes_subtree(db_session: AsyncSession):
    user = await _create_user(db_session)
    article = await _create_article(db_session, user["id"])
    root = await comment_service.create_comment(
        db_session, CommentCreate(content="root", article_id=article["id"]), user_id=user["id"]
    )
    reply = await comment_service.create_comment(
        db_session,
        CommentCreate(content="reply", article_id=article["id"], parent_id=root["id"]),
        user_id=user["id"],
    )

    assert await comment_service.delete_comment(db_session, root["id"]) is True
    assert await comment_service.get_comment(db_session, reply["id"]) is None
    assert await comment_service.delete_comment(db_session, root["id"]) is False
