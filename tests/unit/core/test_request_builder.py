"""Tests for the fluent request builder."""

import pytest
from sqlalchemy.exc import OperationalError

from makerchecker.core.requests import (
    ActorNotPermitted,
    ActorRef,
    DuplicateRequest,
    ExecutableRequest,
    InvalidHook,
    RequestNotInitiated,
    RequestStatus,
    RequestType,
    RequestTypeAlreadySet,
    UnresolvableAction,
)
from makerchecker.core.requests.hooks import CALLBACK_PREFIX, EXECUTABLE_PREFIX
from makerchecker.db.models import MakerCheckerRequest

from tests.support.models import Admin, Article


class PublishArticle(ExecutableRequest):
    def unique_by(self):
        return ["title"]

    def execute(self, request):
        pass


class TestActor:
    """Tests for recording the maker."""

    def test_maker_from_mapped_instance(self, maker_checker, user):
        request = maker_checker.request().made_by(user).to_create(Article, {"title": "A"}).save()

        assert request.maker == ActorRef("User", str(user.id))
        assert request.maker_type == "User"

    def test_actor_alias(self, maker_checker):
        request = maker_checker.request().actor(("Service", "billing")).to_create(
            Article, {"title": "A"}
        ).save()

        assert request.maker == ActorRef("Service", "billing")

    def test_maker_not_in_allowlist(self, make_maker_checker, admin):
        """Test that an allow-list rejects other actor types."""
        maker_checker = make_maker_checker(maker_allowlist=frozenset({"User"}))

        with pytest.raises(ActorNotPermitted) as exc_info:
            maker_checker.request().made_by(admin)

        assert exc_info.value.actor_type == "Admin"

    def test_maker_in_allowlist(self, make_maker_checker, user):
        maker_checker = make_maker_checker(maker_allowlist=frozenset({"User"}))

        request = maker_checker.request().made_by(user).to_create(Article, {"title": "A"}).save()

        assert request.is_pending()

    def test_unpersisted_actor_rejected(self, maker_checker):
        with pytest.raises(TypeError):
            maker_checker.request().made_by(Admin(name="transient"))


class TestRequestType:
    """Tests for setting the proposed mutation."""

    def test_create(self, maker_checker, user):
        request = maker_checker.request().made_by(user).to_create(
            Article, {"title": "A", "description": "B"}
        ).save()

        assert request.request_type is RequestType.CREATE
        assert request.subject_type == "Article"
        assert request.subject_id is None
        assert request.executable is None
        assert request.payload == {"title": "A", "description": "B"}

    def test_create_by_registered_name(self, maker_checker, user):
        request = maker_checker.request().made_by(user).to_create("Article", {"title": "A"}).save()

        assert request.subject_type == "Article"

    def test_update(self, maker_checker, user, article):
        request = maker_checker.request().made_by(user).to_update(
            article, {"title": "New"}
        ).save()

        assert request.request_type is RequestType.UPDATE
        assert request.subject_type == "Article"
        assert request.subject_id == str(article.id)
        assert request.payload == {"title": "New"}

    def test_delete(self, maker_checker, user, article):
        request = maker_checker.request().made_by(user).to_delete(article).save()

        assert request.request_type is RequestType.DELETE
        assert request.subject_id == str(article.id)
        assert request.payload == {}

    def test_update_by_subject_reference(self, maker_checker, user, article):
        request = maker_checker.request().made_by(user).to_update(
            ("Article", article.id), {"title": "New"}
        ).save()

        assert request.subject_id == str(article.id)

    def test_type_cannot_be_set_twice(self, maker_checker, user, article):
        builder = maker_checker.request().made_by(user).to_create(Article, {"title": "A"})

        with pytest.raises(RequestTypeAlreadySet):
            builder.to_delete(article)

    def test_unregistered_model(self, maker_checker, user, admin):
        """Test that only registered models can be request subjects."""
        with pytest.raises(UnresolvableAction):
            maker_checker.request().made_by(user).to_create(Admin, {"name": "x"})

        with pytest.raises(UnresolvableAction):
            maker_checker.request().made_by(user).to_delete(admin)

    def test_unregistered_executable(self, maker_checker, user):
        with pytest.raises(UnresolvableAction):
            maker_checker.request().made_by(user).to_execute("missing")


class TestExecute:
    """Tests for execute requests."""

    def test_execute_binds_executable_hooks(self, maker_checker, registry, user):
        registry.register_executable("publish", PublishArticle)

        request = maker_checker.request().made_by(user).to_execute(
            "publish", {"title": "A"}
        ).save()

        assert request.request_type is RequestType.EXECUTE
        assert request.executable == "publish"
        assert request.subject_type is None
        assert set(request.hooks) == {
            "before_approval", "after_approval", "before_rejection",
            "after_rejection", "on_failure",
        }
        assert all(value == f"{EXECUTABLE_PREFIX}publish" for value in request.hooks.values())

    def test_explicit_hooks_win_over_executable_hooks(self, maker_checker, registry, user):
        registry.register_executable("publish", PublishArticle)

        def notify(request):
            pass

        request = (
            maker_checker.request()
            .made_by(user)
            .after_approval(notify)
            .to_execute("publish", {"title": "A"})
            .on_failure(notify)
            .save()
        )

        assert request.hooks["after_approval"].startswith(CALLBACK_PREFIX)
        assert request.hooks["on_failure"].startswith(CALLBACK_PREFIX)
        assert request.hooks["before_approval"] == f"{EXECUTABLE_PREFIX}publish"

    def test_executable_unique_by_is_default(self, make_maker_checker, registry, user):
        """Test that the executable's unique_by fields are used for comparison."""
        registry.register_executable("publish", PublishArticle)
        maker_checker = make_maker_checker(ensure_requests_are_unique=True)

        maker_checker.request().made_by(user).to_execute(
            "publish", {"title": "A", "channel": "web"}
        ).save()

        with pytest.raises(DuplicateRequest):
            maker_checker.request().made_by(user).to_execute(
                "publish", {"title": "A", "channel": "email"}
            ).save()

    def test_builder_unique_by_overrides_executable(self, make_maker_checker, registry, user):
        registry.register_executable("publish", PublishArticle)
        maker_checker = make_maker_checker(ensure_requests_are_unique=True)

        maker_checker.request().made_by(user).to_execute(
            "publish", {"title": "A", "channel": "web"}
        ).save()

        request = maker_checker.request().made_by(user).unique_by("channel").to_execute(
            "publish", {"title": "A", "channel": "email"}
        ).save()

        assert request.is_pending()


class TestHooks:
    """Tests for attaching hooks."""

    def test_named_hook(self, maker_checker, hook_store, user):
        hook_store.register("notify", lambda request: None)

        request = maker_checker.request().made_by(user).to_create(
            Article, {"title": "A"}
        ).before_approval("notify").save()

        assert request.hooks == {"before_approval": f"{CALLBACK_PREFIX}notify"}

    def test_callable_hook_is_registered(self, maker_checker, hook_store, user):
        calls = []

        request = maker_checker.request().made_by(user).to_create(
            Article, {"title": "A"}
        ).after_rejection(calls.append).save()

        assert hook_store.resolve(request, "after_rejection") == calls.append

    def test_generic_hook(self, maker_checker, user):
        request = maker_checker.request().made_by(user).to_create(
            Article, {"title": "A"}
        ).hook("before_rejection", lambda request: None).save()

        assert "before_rejection" in request.hooks

    def test_invalid_hook_kind(self, maker_checker, user):
        with pytest.raises(InvalidHook) as exc_info:
            maker_checker.request().made_by(user).hook("after_expiring", lambda request: None)

        assert exc_info.value.hook_name == "after_expiring"

    def test_unknown_named_hook(self, maker_checker, user):
        with pytest.raises(UnresolvableAction):
            maker_checker.request().made_by(user).after_approval("not-registered")

    def test_on_initiated_runs_once_after_save(self, maker_checker, recorded_events, user):
        seen = []

        def on_initiated(request):
            seen.append((request.code, len(recorded_events)))

        request = maker_checker.request().made_by(user).to_create(
            Article, {"title": "A"}
        ).on_initiated(on_initiated).save()

        # Runs after the initiated event and is not persisted
        assert seen == [(request.code, 1)]
        assert request.hooks == {}


class TestSave:
    """Tests for persisting requests."""

    def test_defaults(self, maker_checker, session, user):
        request = maker_checker.request().made_by(user).to_create(Article, {"title": "A"}).save()

        assert request.id is not None
        assert len(request.code) == 36
        assert request.request_status is RequestStatus.PENDING
        assert request.description == "New create request for Article"
        assert request.made_at is not None
        assert request.checker is None
        assert request.fingerprint is None

    def test_custom_description(self, maker_checker, user):
        request = maker_checker.request().made_by(user).to_create(
            Article, {"title": "A"}
        ).description("Publish launch post").save()

        assert request.description == "Publish launch post"

    def test_finalize_alias(self, maker_checker, user):
        request = maker_checker.request().made_by(user).to_create(Article, {"title": "A"}).finalize()

        assert request.is_pending()

    def test_initiated_event(self, maker_checker, recorded_events, user):
        request = maker_checker.request().made_by(user).to_create(Article, {"title": "A"}).save()

        assert [event.kind.value for event in recorded_events] == ["initiated"]
        assert recorded_events[0].request is request

    def test_missing_maker(self, maker_checker):
        with pytest.raises(RequestNotInitiated):
            maker_checker.request().to_create(Article, {"title": "A"}).save()

    def test_missing_type(self, maker_checker, user):
        with pytest.raises(RequestNotInitiated):
            maker_checker.request().made_by(user).save()

    def test_builder_is_reset_after_save(self, maker_checker, user, article):
        """Test that the same builder can propose a second request."""
        builder = maker_checker.request().made_by(user).to_create(Article, {"title": "A"})
        first = builder.save()

        second = builder.made_by(user).to_delete(article).save()

        assert first.request_type is RequestType.CREATE
        assert second.request_type is RequestType.DELETE
        assert first.code != second.code

    def test_builder_is_reset_after_failure(self, maker_checker, user):
        builder = maker_checker.request().to_create(Article, {"title": "A"})

        with pytest.raises(RequestNotInitiated):
            builder.save()

        # The type set before the failure is gone
        builder.made_by(user).to_create(Article, {"title": "B"})


class TestUniqueness:
    """Tests for duplicate detection at save time."""

    def test_duplicates_allowed_when_disabled(self, maker_checker, user):
        maker_checker.request().made_by(user).to_create(Article, {"title": "A"}).save()
        maker_checker.request().made_by(user).to_create(Article, {"title": "A"}).save()

    def test_identical_payload_rejected(self, make_maker_checker, session, user):
        maker_checker = make_maker_checker(ensure_requests_are_unique=True)
        maker_checker.request().made_by(user).to_create(Article, {"title": "A"}).save()

        with pytest.raises(DuplicateRequest) as exc_info:
            maker_checker.request().made_by(user).to_create(Article, {"title": "A"}).save()

        assert exc_info.value.request_type == "create"
        assert session.query(MakerCheckerRequest).count() == 1

    def test_unique_by_field(self, make_maker_checker, user):
        """Test that only unique_by fields are compared."""
        maker_checker = make_maker_checker(ensure_requests_are_unique=True)
        maker_checker.request().made_by(user).to_create(
            Article, {"title": "A", "description": "B"}
        ).unique_by("title").save()

        with pytest.raises(DuplicateRequest):
            maker_checker.request().made_by(user).to_create(
                Article, {"title": "A", "description": "C"}
            ).unique_by("title").save()

        request = maker_checker.request().made_by(user).to_create(
            Article, {"title": "Z", "description": "B"}
        ).unique_by("title").save()
        assert request.is_pending()

    def test_whole_payload_compared_without_unique_by(self, make_maker_checker, user):
        maker_checker = make_maker_checker(ensure_requests_are_unique=True)
        maker_checker.request().made_by(user).to_create(
            Article, {"title": "A", "description": "B"}
        ).save()

        request = maker_checker.request().made_by(user).to_create(
            Article, {"title": "A", "description": "C"}
        ).save()

        assert request.is_pending()

    def test_different_subjects_do_not_collide(self, make_maker_checker, session, user, article):
        maker_checker = make_maker_checker(ensure_requests_are_unique=True)
        other = Article(title="Other")
        session.add(other)
        session.commit()

        maker_checker.request().made_by(user).to_update(article, {"title": "A"}).save()
        request = maker_checker.request().made_by(user).to_update(other, {"title": "A"}).save()

        assert request.is_pending()

    def test_decided_requests_do_not_block(self, make_maker_checker, user, other_user):
        """Test that only pending requests count as duplicates."""
        maker_checker = make_maker_checker(ensure_requests_are_unique=True)
        first = maker_checker.request().made_by(user).to_create(Article, {"title": "A"}).save()
        maker_checker.reject(first, other_user)

        second = maker_checker.request().made_by(user).to_create(Article, {"title": "A"}).save()

        assert second.is_pending()
        assert first.fingerprint is None
        assert second.fingerprint is not None

    def test_fingerprint_guards_the_insert(self, make_maker_checker, monkeypatch, user):
        """Test that the unique fingerprint catches a duplicate the lookup missed."""
        maker_checker = make_maker_checker(ensure_requests_are_unique=True)
        maker_checker.request().made_by(user).to_create(Article, {"title": "A"}).save()

        builder = maker_checker.request()
        monkeypatch.setattr(builder.uniqueness, "exists", lambda variant, fields: False)

        with pytest.raises(DuplicateRequest):
            builder.made_by(user).to_create(Article, {"title": "A"}).save()

    def test_lookup_failure_is_not_initiated(self, make_maker_checker, monkeypatch, session, user):
        """Test that a database error while looking for duplicates is wrapped."""
        maker_checker = make_maker_checker(ensure_requests_are_unique=True)
        builder = maker_checker.request()

        def broken_lookup(variant, fields):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(builder.uniqueness, "exists", broken_lookup)

        with pytest.raises(RequestNotInitiated) as exc_info:
            builder.made_by(user).to_create(Article, {"title": "A"}).save()

        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert session.query(MakerCheckerRequest).count() == 0
        # The builder can be reused after the failure
        monkeypatch.undo()
        request = builder.made_by(user).to_create(Article, {"title": "A"}).save()
        assert request.is_pending()
