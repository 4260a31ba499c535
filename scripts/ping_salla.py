from app.integrations.salla import build_salla_clients

if __name__ == "__main__":
    orders_api, statuses = build_salla_clients()
    plan = statuses.resolve_plan()
    print("new order filters:", plan.new_order_filters)
    print("preparing status:", plan.preparing_status_id, plan.preparing_status_slug, plan.preparing_status_name)

    result = orders_api.fetch_candidates(plan.new_order_filters, 5)
    if not result.ok:
        print("fetch failed:", result.error)
    else:
        for c in result.value:
            print(c.fetch_position, c.order_id, c.order_number, c.remote_status, c.placed_at or c.created_at)


# 运行（只读，不会认领或改状态）
# export $(grep -v '^#' .env | xargs)
# python scripts/ping_salla.py

# 能看到状态过滤值和最旧的几张新订单，说明 token、域名、限流都 OK
