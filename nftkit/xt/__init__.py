"""Binary info payloads of xtables match and target expressions."""