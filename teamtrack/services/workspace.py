# teamtrack/services/workspace.py
"""
WorkspaceCoordinator — связывает чистые правила (teamtrack.rules) с внешним
документным хранилищем и провайдером идентичности.

Схема работы любого действия:
  1. проверка правил по зеркалам в памяти (ошибка до любой записи);
  2. одна запись в хранилище (или одна транзакция);
  3. зеркала обновляются только из уведомлений хранилища, без оптимистичных правок.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError as PydanticValidationError

from teamtrack.auth.base import IdentityProvider
from teamtrack.core.exceptions import (
    AccountDeactivated,
    CommentNotFound,
    LastOwnerViolation,
    MemberNotFound,
    MemberValidationError,
    NotAuthorized,
    NotFoundError,
    TaskNotFound,
)
from teamtrack.core.settings import Settings, settings as default_settings
from teamtrack.rules import comments as comment_rules
from teamtrack.rules import identity as identity_rules
from teamtrack.rules import tasks as task_rules
from teamtrack.schemas.comment import Comment
from teamtrack.schemas.member import Member, MemberCreate, MemberProfileUpdate, Role
from teamtrack.schemas.task import Status, Task, TaskCreate, TaskUpdate
from teamtrack.schemas.team import Team
from teamtrack.services import views
from teamtrack.store.base import (
    COMMENTS,
    MEMBERS,
    SERVER_TIMESTAMP,
    TASKS,
    TEAMS,
    DocumentStore,
    Subscription,
)

logger = logging.getLogger("TeamTrack.Workspace")

# Области подписок координатора
SCOPE_MEMBERS = "members"
SCOPE_TASKS = "tasks"
SCOPE_TEAMS = "teams"
SCOPE_COMMENTS = "comments"

def _parse(model: Type[BaseModel], docs: List[Dict[str, Any]],
           previous: Optional[Dict[str, Any]] = None) -> List[Any]:
    """
    Разбирает снимок коллекции. Битый документ не выпадает из зеркала:
    остаётся последняя корректная версия из previous, если она есть.
    """
    parsed = []
    for doc in docs:
        try:
            parsed.append(model(**doc))
        except PydanticValidationError as e:
            last_good = (previous or {}).get(doc.get("id"))
            logger.error(f"Malformed {model.__name__} document {doc.get('id')}"
                         f"{', keeping last good version' if last_good else ', skipped'}: {e}")
            if last_good is not None:
                parsed.append(last_good)
    return parsed

class WorkspaceCoordinator:
    """
    Один логический поток управления (asyncio). Точки приостановки: только
    обращения к хранилищу и провайдеру идентичности.
    """

    def __init__(self, store: DocumentStore, identity: IdentityProvider, settings: Optional[Settings] = None):
        self.store = store
        self.identity = identity
        self.settings = settings or default_settings

        # Зеркала подтверждённого состояния хранилища
        self.members: Dict[str, Member] = {}
        self.tasks: Dict[str, Task] = {}
        self.teams: Dict[str, Team] = {}
        self.comments: List[Comment] = []

        self.current_member_id: Optional[str] = None
        self.selected_task_id: Optional[str] = None
        self._subscriptions: Dict[str, Subscription] = {}
        self._remove_identity_listener: Optional[Callable[[], None]] = None

    # ==== Жизненный цикл ====

    async def start(self) -> None:
        """
        Подписывается на смену идентичности. Если сессия уже есть, сразу поднимает workspace.
        """
        if self._remove_identity_listener is None:
            self._remove_identity_listener = self.identity.on_identity_change(self._on_identity_change)
        if self.identity.current_identity is not None:
            await self._on_identity_change(self.identity.current_identity)

    async def close(self) -> None:
        self._teardown_all()
        if self._remove_identity_listener is not None:
            self._remove_identity_listener()
            self._remove_identity_listener = None

    async def login(self, email: str, password: str) -> Member:
        await self.identity.sign_in(email, password)
        return self.current_member

    async def logout(self) -> None:
        await self.identity.sign_out()

    async def _on_identity_change(self, external_id: Optional[str]) -> None:
        self._teardown_all()
        self.current_member_id = None
        if external_id is None:
            logger.info("Identity cleared, workspace subscriptions torn down")
            return
        try:
            await self._bootstrap_profile(external_id)
        except AccountDeactivated:
            await self.identity.sign_out()
            raise
        self.current_member_id = external_id
        self._subscribe(SCOPE_MEMBERS, MEMBERS, self._on_members_snapshot)
        self._subscribe(SCOPE_TASKS, TASKS, self._on_tasks_snapshot)
        self._subscribe(SCOPE_TEAMS, TEAMS, self._on_teams_snapshot, order_by="name")
        logger.info(f"Workspace opened for member {external_id}")

    async def _bootstrap_profile(self, external_id: str) -> None:
        """
        Атомарно создаёт профиль при первом входе или повышает до Owner, если
        активных Owner не осталось.
        """
        async with self.store.transaction() as tx:
            profile_doc = await tx.find(MEMBERS, external_id)
            members = _parse(Member, await tx.list(MEMBERS))
            profile = Member(**profile_doc) if profile_doc else None
            decision = identity_rules.bootstrap_or_promote(external_id, profile, members)
            if decision.action == identity_rules.CREATE:
                email = self.identity.email_for(external_id) or ""
                name = self.identity.display_name(external_id) or email.split("@")[0]
                tx.set(MEMBERS, external_id, identity_rules.build_profile(
                    external_id, name, email, decision.role, self._avatar_for(external_id),
                ))
            elif decision.action == identity_rules.PROMOTE:
                tx.update(MEMBERS, external_id, {"role": Role.OWNER.value})
        if decision.action == identity_rules.CREATE:
            logger.info(f"Created profile {external_id} with role {decision.role.value}")
        elif decision.action == identity_rules.PROMOTE:
            logger.warning(f"No active Owner found, promoted {external_id} to Owner")

    def _avatar_for(self, member_id: str) -> str:
        return self.settings.AVATAR_URL_TEMPLATE.format(member_id=member_id)

    # ==== Подписки ====

    def _subscribe(self, scope: str, collection: str, callback, where: Optional[Dict[str, Any]] = None,
                   order_by: Optional[str] = None) -> None:
        self._teardown(scope)
        self._subscriptions[scope] = self.store.subscribe(collection, callback, where=where, order_by=order_by)

    def _teardown(self, scope: str) -> None:
        subscription = self._subscriptions.pop(scope, None)
        if subscription is not None:
            subscription.cancel()

    def _teardown_all(self) -> None:
        for scope in list(self._subscriptions):
            self._teardown(scope)
        self.members = {}
        self.tasks = {}
        self.teams = {}
        self.comments = []
        self.selected_task_id = None

    @property
    def active_scopes(self) -> List[str]:
        return sorted(self._subscriptions)

    def _on_members_snapshot(self, docs: List[Dict[str, Any]]) -> None:
        self.members = {m.id: m for m in _parse(Member, docs, self.members)}

    def _on_tasks_snapshot(self, docs: List[Dict[str, Any]]) -> None:
        self.tasks = {t.id: t for t in _parse(Task, docs, self.tasks)}
        if self.selected_task_id is not None and self.selected_task_id not in self.tasks:
            logger.info(f"Selected task {self.selected_task_id} disappeared, closing its comments")
            self.select_task(None)

    def _on_teams_snapshot(self, docs: List[Dict[str, Any]]) -> None:
        self.teams = {t.id: t for t in _parse(Team, docs, self.teams)}

    def _on_comments_snapshot(self, docs: List[Dict[str, Any]]) -> None:
        self.comments = _parse(Comment, docs, {c.id: c for c in self.comments})

    def select_task(self, task_id: Optional[str]) -> None:
        """
        Меняет открытую задачу: снимает подписку на комментарии и подписывается заново.
        """
        self._teardown(SCOPE_COMMENTS)
        self.comments = []
        self.selected_task_id = None
        if task_id is None:
            return
        if task_id not in self.tasks:
            raise TaskNotFound(f"Task {task_id} not found.")
        self.selected_task_id = task_id
        self._subscribe(SCOPE_COMMENTS, COMMENTS, self._on_comments_snapshot,
                        where={"task_id": task_id}, order_by="timestamp")

    # ==== Чтение зеркал ====

    @property
    def current_member(self) -> Optional[Member]:
        if self.current_member_id is None:
            return None
        return self.members.get(self.current_member_id)

    @property
    def active_members(self) -> List[Member]:
        return identity_rules.active_members(self.members.values())

    @property
    def selected_task(self) -> Optional[Task]:
        return self.tasks.get(self.selected_task_id) if self.selected_task_id else None

    def capabilities(self, task_id: str) -> task_rules.Capabilities:
        return task_rules.capabilities_for(self.current_member, self._task(task_id))

    def dashboard(self) -> views.DashboardSummary:
        return views.dashboard_summary(self.tasks.values())

    def my_tasks(self) -> List[Task]:
        return views.active_tasks(self.tasks.values(), member_id=self.current_member_id)

    def completed_tasks(self) -> List[Task]:
        return views.completed_tasks(self.tasks.values())

    def team_overview(self, team_id: str) -> views.TeamOverview:
        team = self.teams.get(team_id)
        if team is None:
            raise NotFoundError(f"Team {team_id} not found.")
        return views.team_overview(team, self.members, self.tasks.values())

    def _actor(self) -> Member:
        if self.current_member_id is None:
            raise NotAuthorized("No member is signed in.")
        return identity_rules.ensure_active(self.current_member)

    def _task(self, task_id: str) -> Task:
        task = self.tasks.get(task_id)
        if task is None:
            raise TaskNotFound(f"Task {task_id} not found.")
        return task

    def _member(self, member_id: str) -> Member:
        member = self.members.get(member_id)
        if member is None:
            raise MemberNotFound(f"Member {member_id} not found.")
        return member

    # ==== Задачи ====

    async def add_task(self, data: TaskCreate) -> str:
        actor = self._actor()
        if not task_rules.can_create_task(actor):
            logger.warning(f"Member {actor.id} tried to create a task without Owner role")
            raise NotAuthorized("Only an Owner can create tasks.")
        doc = task_rules.validate_new_task(data, self.members)
        task_id = await self.store.create(TASKS, doc)
        logger.info(f"Created task {task_id} assigned to {doc['assigned_to_ids']}")
        return task_id

    async def update_task(self, task_id: str, changes: TaskUpdate) -> None:
        actor = self._actor()
        task = self._task(task_id)
        try:
            patch = task_rules.build_task_patch(task, changes, actor, self.members, SERVER_TIMESTAMP)
        except NotAuthorized:
            logger.warning(f"Member {actor.id} is not allowed to update task {task_id}")
            raise
        if not patch:
            logger.info(f"Update called but no changes for task {task_id}")
            return
        await self.store.update(TASKS, task_id, patch)
        logger.info(f"Updated task {task_id} fields: {sorted(patch)}")

    async def change_task_status(self, task_id: str, status: Status) -> None:
        await self.update_task(task_id, TaskUpdate(status=status))

    async def remove_task(self, task_id: str) -> None:
        """
        Удаляет задачу вместе с её комментариями одной транзакцией.
        """
        actor = self._actor()
        task = self._task(task_id)
        task_rules.ensure_can_delete(actor, task)
        async with self.store.transaction() as tx:
            for comment in await tx.list(COMMENTS, where={"task_id": task_id}):
                tx.delete(COMMENTS, comment["id"])
            tx.delete(TASKS, task_id)
        logger.info(f"Removed task {task_id}")

    # ==== Комментарии ====

    async def add_comment(self, task_id: str, text: str) -> str:
        actor = self._actor()
        task = self._task(task_id)
        task_rules.ensure_can_comment(actor, task)
        doc = comment_rules.validate_new_comment(task_id, actor.id, text)
        comment_id = await self.store.create(COMMENTS, doc)
        logger.info(f"Member {actor.id} commented on task {task_id}")
        return comment_id

    async def _comment(self, comment_id: str) -> Comment:
        for comment in self.comments:
            if comment.id == comment_id:
                return comment
        try:
            return Comment(**await self.store.get(COMMENTS, comment_id))
        except NotFoundError:
            raise CommentNotFound(f"Comment {comment_id} not found.")

    async def toggle_reaction(self, comment_id: str, emoji: str) -> None:
        """
        Читает реакции из зеркала и перезаписывает словарь целиком.
        Параллельные переключения на одном комментарии: побеждает последняя запись.
        """
        actor = self._actor()
        comment = await self._comment(comment_id)
        reactions = comment_rules.toggle_reaction(comment.reactions, actor.id, emoji)
        await self.store.update(COMMENTS, comment_id, {"reactions": reactions})
        logger.info(f"Member {actor.id} toggled '{emoji}' on comment {comment_id}")

    # ==== Участники ====

    async def add_member(self, data: MemberCreate) -> str:
        """
        Owner добавляет участника: учётная запись создаётся во вторичной сессии
        провайдера, чтобы текущая сессия Owner'а не менялась.
        """
        identity_rules.ensure_owner(self._actor(), "add members")
        email = identity_rules.ensure_unique_email(data.email, self.members.values())
        async with self.identity.secondary_session() as session:
            external_id = await session.create_identity(email, data.password, display_name=data.name)
        role = identity_rules.resolve_initial_role(self.members.values())
        await self.store.set(MEMBERS, external_id, identity_rules.build_profile(
            external_id, data.name, email, role, self._avatar_for(external_id),
        ))
        logger.info(f"Added member {external_id} ({email}) with role {role.value}")
        return external_id

    async def update_member_profile(self, member_id: str, changes: MemberProfileUpdate) -> None:
        actor = self._actor()
        target = self._member(member_id)
        if actor.id != target.id and not actor.is_owner:
            raise NotAuthorized("Only an Owner can edit other members' profiles.")
        data = changes.model_dump(exclude_unset=True, exclude_none=True)
        patch: Dict[str, Any] = {}
        if "name" in data:
            patch["name"] = data["name"]
        if "email" in data:
            patch["email"] = identity_rules.ensure_unique_email(data["email"], self.members.values(), exclude_id=target.id)
        if "avatar_url" in data:
            patch["avatar_url"] = data["avatar_url"]
        if not patch:
            return
        await self.store.update(MEMBERS, member_id, patch)
        logger.info(f"Updated profile {member_id} fields: {sorted(patch)}")

    async def _guarded_member_write(self, member_id: str,
                                    build_patch: Callable[[Member, List[Member]], Dict[str, Any]]) -> None:
        """
        Повторно проверяет правило на свежем состоянии внутри транзакции.
        """
        async with self.store.transaction() as tx:
            members = _parse(Member, await tx.list(MEMBERS))
            target = next((m for m in members if m.id == member_id), None)
            if target is None:
                raise MemberNotFound(f"Member {member_id} not found.")
            tx.update(MEMBERS, member_id, build_patch(target, members))

    async def change_member_role(self, member_id: str, new_role: Role) -> None:
        actor = identity_rules.ensure_owner(self._actor(), "change member roles")
        target = self._member(member_id)
        new_role = Role(new_role)
        if target.is_deleted:
            raise MemberValidationError("Cannot change the role of a removed member.")
        members = list(self.members.values())
        if not identity_rules.can_change_role(actor.role, target, new_role, members):
            logger.warning(f"Refused to change role of {member_id} to {new_role.value}: last active Owner")
            raise LastOwnerViolation("Cannot demote the last active Owner.")
        await self._guarded_member_write(
            member_id, lambda fresh, everyone: identity_rules.demote(fresh, new_role, everyone),
        )
        logger.info(f"Changed role of {member_id} to {new_role.value}")

    async def remove_member(self, member_id: str) -> None:
        actor = identity_rules.ensure_owner(self._actor(), "remove members")
        if member_id == actor.id:
            raise MemberValidationError("You cannot remove yourself.")
        target = self._member(member_id)
        if target.is_deleted:
            raise MemberValidationError("Member is already removed.")
        identity_rules.soft_delete(target, self.members.values())
        await self._guarded_member_write(member_id, identity_rules.soft_delete)
        logger.info(f"Soft-deleted member {member_id}")

    async def restore_member(self, member_id: str) -> None:
        identity_rules.ensure_owner(self._actor(), "restore members")
        target = self._member(member_id)
        if not target.is_deleted:
            raise MemberValidationError("Member is not removed.")
        if target.email:
            identity_rules.ensure_unique_email(target.email, self.members.values(), exclude_id=target.id)
        await self.store.update(MEMBERS, member_id, identity_rules.restore(target))
        logger.info(f"Restored member {member_id}")
