import pytest

from sales_dashboard.loaders import default_files
from sales_dashboard.transforms import build_dataset_from_rows


def _order(no, date, biz, agency, amount, city, district, dong=""):
    return {
        "수주번호": no, "기준일자": date, "사업자 등록번호": biz, "실적대리점": agency,
        "수주금액": amount, "시": city, "구": district, "동": dong,
    }


def _customer(biz, agency, name, first_amount):
    return {"사업자 등록번호": biz, "실적대리점": agency, "회사명": name, "최초주문금액": first_amount}


def _product(no, category, qty, flag, amount):
    return {"수주번호": no, "카테고리(중분류)": category, "수량": qty, "신제품구분": flag, "수주금액": amount}


@pytest.fixture
def order_rows():
    return [
        _order("SO1", "2024.01.10", "111", "DM대구칠성", "1,000,000", "대구", "북구"),
        _order("SO2", "2024.02.05", "111", "DM대구칠성", "2,000,000", "대구", "중구"),
        _order("SO3", "2024.02.20", "222", "DM대구칠성", "500,000", "경북", "포항시"),
        _order("SO4", "2024.03.01", "333", "DM공간플러스", "3,000,000", "서울", "송파구"),
        _order("SO5", "2024.03.02", "444", "DM송파오금", "1,000,000", "서울", "강남구"),
        _order("SO6", "2024.03.03", "555", "DM광주첨단", "0", "광주", "북구"),
    ]


@pytest.fixture
def customer_rows():
    return [
        _customer("111", "DM대구칠성", "고객A", "1,000,000"),
        _customer("222", "DM대구칠성", "고객B", ""),
        _customer("333", "DM공간플러스", "", "3,000,000"),
        _customer("444", "DM송파오금", "고객D", ""),
        _customer("999", "DM대구칠성", "고객X", "100"),
        _customer("111", "DM대구칠성", "고객A2", "1,000,000"),
    ]


@pytest.fixture
def product_rows():
    return [
        _product("SO1", "책상", "2", "신제품", "600,000"),
        _product("SO1", "의자", "1", "기존", "400,000"),
        _product("SO2", "책상", "3", "Y", "2,000,000"),
        _product("SO3", "수납", "1", "기존", "500,000"),
        _product("SO4", "책상", "1", "신제품", "3,000,000"),
        _product("SO5", "조명", "1", "기존", "1,000,000"),
        _product("SO6", "책상", "1", "신제품", "10"),
        _product("SO9", "책상", "1", "신제품", "1"),
    ]


@pytest.fixture
def dataset(order_rows, customer_rows, product_rows):
    return build_dataset_from_rows(order_rows, customer_rows, product_rows)


@pytest.fixture
def fresh_default_cache():
    default_files.clear_cache()
    yield
    default_files.clear_cache()


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()
