from app.models.user import User
from app.models.book import Book
from app.models.ownership import UserBookLink, BookRelation
from app.models.purchase import Purchase, PurchaseStatus, PaymentMethod
from app.models.email import EmailLog

# add ALL models here
