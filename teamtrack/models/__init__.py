from .document import Document
from .credential import Credential

# новые ORM-модели регистрировать здесь
