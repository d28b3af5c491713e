from .contract import Contract, ContractTenant
from .invoice import Invoice, InvoiceItem
from .motel import Motel, Room, RoomService, Service
from .notification import Notification
from .payment import Payment, PendingOnlinePayment
from .user import User
