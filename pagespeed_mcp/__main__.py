from pagespeed_mcp.main import main

main()
