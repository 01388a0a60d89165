from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()

PROJECT_STATUSES = ('active', 'archived', 'completed')
TASK_STATUSES = ('todo', 'in_progress', 'done', 'cancelled')
TASK_PRIORITIES = ('low', 'medium', 'high', 'urgent')

DEFAULT_PROJECT_COLOR = '#6366f1'


def isoformat(value):
    return value.isoformat() if value else None


# ============================================
# 共用欄位: 時間戳記 + 軟刪除
# ============================================
class TimestampMixin:
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class SoftDeleteMixin:
    deleted_at = db.Column(db.DateTime, nullable=True, index=True)

    @classmethod
    def active(cls):
        """只查詢未被軟刪除的資料"""
        return cls.query.filter(cls.deleted_at.is_(None))

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    def soft_delete(self, when=None):
        self.deleted_at = when or datetime.utcnow()


# ============================================
# 1. User 模型
# ============================================
class User(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    avatar_url = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    # 關聯
    owned_projects = db.relationship('Project', back_populates='owner', lazy=True)
    assigned_tasks = db.relationship('Task', back_populates='assignee', lazy=True)

    def to_dict(self):
        # password_hash 永遠不回傳
        return {
            'id': self.id,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'avatar_url': self.avatar_url,
            'is_active': self.is_active,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<User {self.email}>'


# ============================================
# 2. Project 模型
# ============================================
class Project(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = 'projects'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    color = db.Column(db.String(7), default=DEFAULT_PROJECT_COLOR, nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    status = db.Column(db.String(20), default='active', nullable=False)  # active, archived, completed

    # 關聯
    owner = db.relationship('User', back_populates='owned_projects')
    tasks = db.relationship('Task', back_populates='project', lazy=True, cascade='all,delete-orphan')

    # 索引
    __table_args__ = (
        db.Index('idx_projects_owner_id', 'owner_id'),
        db.Index('idx_projects_status', 'status'),
        db.Index('idx_projects_created_at', 'created_at'),
    )

    @property
    def live_tasks(self):
        return [task for task in self.tasks if not task.is_deleted]

    def soft_delete(self, when=None):
        """刪除專案時連帶軟刪除底下的任務"""
        when = when or datetime.utcnow()
        super().soft_delete(when)
        for task in self.live_tasks:
            task.soft_delete(when)

    def to_dict(self, include_owner=False, include_tasks=False):
        tasks = self.live_tasks
        data = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'color': self.color,
            'owner_id': self.owner_id,
            'status': self.status,
            'tasks_count': len(tasks),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }
        if include_owner and self.owner:
            data['owner'] = self.owner.to_dict()
        if include_tasks:
            data['tasks'] = [task.to_dict() for task in tasks]
        return data

    def __repr__(self):
        return f'<Project {self.name}>'


# ============================================
# 3. Task 模型
# ============================================
class Task(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = 'tasks'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='todo')  # todo, in_progress, done, cancelled
    priority = db.Column(db.String(20), nullable=False, default='medium')  # low, medium, high, urgent

    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False)
    assignee_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    due_date = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    # 關聯
    project = db.relationship('Project', back_populates='tasks')
    assignee = db.relationship('User', back_populates='assigned_tasks')

    # 索引
    __table_args__ = (
        db.Index('idx_tasks_project_status', 'project_id', 'status'),
        db.Index('idx_tasks_assignee_id', 'assignee_id'),
        db.Index('idx_tasks_priority', 'priority'),
        db.Index('idx_tasks_due_date', 'due_date'),
        db.Index('idx_tasks_created_at', 'created_at'),
    )

    def set_status(self, status):
        """
        更新狀態並維護 completed_at

        變成 done 時記錄完成時間 (已經是 done 則保留原本的時間),
        其他狀態一律清除
        """
        self.status = status
        if status == 'done':
            if self.completed_at is None:
                self.completed_at = datetime.utcnow()
        else:
            self.completed_at = None

    def to_dict(self, include_project=False):
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'project_id': self.project_id,
            'assignee_id': self.assignee_id,
            'status': self.status,
            'priority': self.priority,
            'due_date': isoformat(self.due_date),
            'completed_at': isoformat(self.completed_at),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }
        if include_project and self.project:
            data['project'] = self.project.to_dict()
        if self.assignee is not None and not self.assignee.is_deleted:
            data['assignee'] = self.assignee.to_dict()
        return data

    def __repr__(self):
        return f'<Task {self.title}>'
