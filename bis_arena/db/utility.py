table_primary_keys_dict = {
    # Any one of these keys identifies a user
    "users": ["user_id", "email"],
}

def check_primary_keys(table_name: str, record: dict) -> bool:
    primary_keys_options = table_primary_keys_dict.get(table_name)
    if not primary_keys_options:
        return False
    for pk_option in primary_keys_options:
        if pk_option in record:
            return True
    return False
