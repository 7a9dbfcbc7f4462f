from .members import Member, Subscription, MemberBadge
from .catalog import Business, CategoryPointsConfig, StoreItem
from .orders import StoreOrder, OrderItem
from .ledger import SellerBalance, SellerBalanceTransaction, GatewayOperation
from .points import QRScan, Reward, RewardRedemption
from .offers import ResaleOffer, SellerTimeAway

__all__ = [
    'Member', 'Subscription', 'MemberBadge',
    'Business', 'CategoryPointsConfig', 'StoreItem',
    'StoreOrder', 'OrderItem',
    'SellerBalance', 'SellerBalanceTransaction', 'GatewayOperation',
    'QRScan', 'Reward', 'RewardRedemption',
    'ResaleOffer', 'SellerTimeAway',
]
