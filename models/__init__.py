# Import every model so Base.metadata and string relationships resolve
from models.AuditTrail import AuditTrail, AuditEntityEnum
from models.CatalogItem import CatalogItem
from models.ConstructionSite import ConstructionSite
from models.RentedEquipment import RentedEquipment, RentedEquipmentPhoto, RentedEquipmentStatusEnum, PhotoPhaseEnum
from models.SiteInventory import SiteInventoryItem
from models.StockMovement import StockMovement, MovementTypeEnum, MovementCategoryEnum
from models.ToolLoan import ToolLoan, ItemOriginEnum, LoanStatusEnum
